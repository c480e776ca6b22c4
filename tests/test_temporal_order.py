
from __future__ import annotations

import math
import numpy as np
import pytest

from vpm3d import ParticleField, step


class RotSystem:
    """Duck-typed evaluator. Solid body rotation about z with angular rate w."""
    def __init__(self, w: float) -> None:
        self.w = float(w)

    def evaluate(self, field, config) -> None:
        # u = (-w y, w x, 0)
        x = field.x
        field.U[:] = np.stack([-self.w * x[:, 1], self.w * x[:, 0], np.zeros(len(field))], axis=1)
        field.J[:] = np.array([[0.0, -self.w, 0.0], [self.w, 0.0, 0.0], [0.0, 0.0, 0.0]])


def final_position_exact(x0: np.ndarray, w: float, T: float) -> np.ndarray:
    c, s = math.cos(w * T), math.sin(w * T)
    R = np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]], dtype=float)
    return (R @ x0.T).T


@pytest.mark.parametrize("integrator,order", [("euler", 1.0), ("rk3", 3.0)])
def test_temporal_order_positions(integrator: str, order: float) -> None:
    w = 2.0  # rad/s
    T = 0.5
    x0 = np.array([[0.3, 0.1, 0.0], [-0.2, 0.4, 0.1], [0.0, -0.35, -0.2]], dtype=float)
    gamma = np.tile([0.0, 0.0, 1.0], (3, 1))

    def run(dt: float) -> float:
        field = ParticleField(x0, gamma, 0.05, evaluator=RotSystem(w))
        n = int(round(T / dt))
        for _ in range(n):
            step(field, dt, scheme=integrator)
        x_exact = final_position_exact(x0, w, n * dt)
        err = float(np.linalg.norm(field.x - x_exact) / (np.linalg.norm(x_exact) + 1e-12))
        return err

    e1 = run(0.08)
    e2 = run(0.04)
    ratio = e1 / max(e2, 1e-15)
    observed_order = math.log(ratio, 2)
    assert observed_order > order - 0.6, (integrator, observed_order)


@pytest.mark.parametrize("integrator", ["euler", "rk3"])
def test_circulation_along_rotation_axis_is_not_stretched(integrator: str) -> None:
    # Γ ∥ ω and J Γ = 0 for rigid rotation about z
    field = ParticleField([[0.1, 0.2, 0.0]], [[0.0, 0.0, 1.0]], 0.05, evaluator=RotSystem(3.0))
    for _ in range(10):
        step(field, 0.01, scheme=integrator)
    np.testing.assert_allclose(field.gamma, [[0.0, 0.0, 1.0]], atol=1e-14)
