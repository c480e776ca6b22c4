
from __future__ import annotations

import numpy as np
import pytest

from vpm3d import NumbaConfig, ParticleField, ReformulatedVPM, step


class RandomJacobian:
    """Writes fixed random U and J; isolates the integrator cost from any N-body work."""
    def __init__(self, n: int, seed: int = 0) -> None:
        rng = np.random.default_rng(seed)
        self.U = rng.normal(size=(n, 3))
        self.J = 1e-2 * rng.normal(size=(n, 3, 3))

    def evaluate(self, field, config) -> None:
        field.U[:] = self.U
        field.J[:] = self.J


@pytest.mark.benchmark(group="step")
@pytest.mark.parametrize("N", [1_000, 10_000, 100_000])
@pytest.mark.parametrize("scheme", ["euler", "rk3"])
@pytest.mark.parametrize("reformulated", [False, True])
@pytest.mark.parametrize("use_numba", [False, True])
def test_step_benchmark(benchmark, N: int, scheme: str, reformulated: bool, use_numba: bool) -> None:
    rng = np.random.default_rng(0)
    x = rng.uniform(-0.5, 0.5, size=(N, 3))
    g = rng.normal(0.0, 1.0, size=(N, 3))
    kwargs = {"formulation": ReformulatedVPM()} if reformulated else {}
    field = ParticleField(x, g, 0.03, evaluator=RandomJacobian(N),
                          numba=NumbaConfig(enabled=use_numba), **kwargs)

    def run() -> None:
        step(field, 1e-4, scheme=scheme)

    benchmark(run)
    assert np.isfinite(field.gamma).all()
