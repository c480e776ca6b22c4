from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Any
from collections.abc import Callable, Sequence

import logging
import numpy as np

from .vpm3d import (
    ArrayLike3D,
    ClassicVPM,
    Formulation,
    NumbaConfig,
    ParticleField,
    ReformulatedVPM,
    kernel_by_name,
)
from .timeintegration import step
from .operators import VelocityJacobianEvaluator

logger = logging.getLogger(__name__)


# ----------------------
# Configuration objects
# ----------------------

@dataclass(slots=True)
class NumericsConfig:
    """Numerical options bound to a particle field.

    Validates the formulation parameters and the kernel name.
    """
    formulation: Literal["classic", "reformulated"] = "classic"
    f: float = 0.0
    g: float = 0.2
    kernel: Literal["singular", "gaussian", "gaussianerf", "winckelmans"] = "gaussianerf"
    transposed: bool = True
    numba: NumbaConfig = field(default_factory=NumbaConfig)

    def __post_init__(self) -> None:
        if self.formulation not in {"classic", "reformulated"}:
            raise ValueError(f"Unknown formulation: {self.formulation}")
        kernel_by_name(self.kernel)
        if self.formulation == "reformulated":
            # raises on singular f
            ReformulatedVPM(f=self.f, g=self.g)

    def make_formulation(self) -> Formulation:
        if self.formulation == "reformulated":
            return ReformulatedVPM(f=self.f, g=self.g)
        return ClassicVPM()


@dataclass(slots=True)
class SimulationConfig:
    """High-level run controls."""
    integrator: Literal["euler", "rk3"] = "rk3"
    dt: float = 1e-3
    steps: int = 100
    relax_every: int = 0  # 0 -> never relax
    log_every: int = 0  # 0 -> log only start and end

    def __post_init__(self) -> None:
        if self.integrator not in {"euler", "rk3"}:
            raise ValueError(f"Unknown integrator: {self.integrator}")
        if not (np.isfinite(self.dt) and self.dt > 0.0):
            raise ValueError("dt must be positive.")
        if self.steps < 0:
            raise ValueError("steps must be non-negative.")
        if self.relax_every < 0:
            raise ValueError("relax_every must be non-negative.")
        if self.log_every < 0:
            raise ValueError("log_every must be non-negative.")


# ----------------------
# Field construction
# ----------------------

def build_field(
    positions: ArrayLike3D,
    gamma: ArrayLike3D,
    sigma: float | np.ndarray | Sequence[float],
    numerics: NumericsConfig | None = None,
    **collaborators: Any,
) -> ParticleField:
    """ParticleField configured from a NumericsConfig.

    Keyword arguments (evaluator, sfs_model, viscous, relaxation, freestream, t)
    are passed through to ParticleField.
    """
    numerics = numerics or NumericsConfig()
    return ParticleField(
        positions, gamma, sigma,
        formulation=numerics.make_formulation(),
        kernel=kernel_by_name(numerics.kernel),
        transposed=numerics.transposed,
        numba=numerics.numba,
        **collaborators,
    )


# ----------------------
# Run loop
# ----------------------

def run(
    pfield: ParticleField,
    config: SimulationConfig,
    *,
    evaluator: VelocityJacobianEvaluator | None = None,
    callback: Callable[[ParticleField, int], bool | None] | None = None,
) -> int:
    """Step the field ``config.steps`` times, advancing its clock.

    Relaxation runs on steps where ``nt > 0`` and ``nt % relax_every == 0``.
    ``callback(field, i)`` is called after every step; returning True stops
    the run. Returns the number of steps taken.
    """
    logger.info(
        "Starting run: integrator=%s formulation=%s n=%d dt=%g steps=%d t0=%g",
        config.integrator, pfield.formulation.name, pfield.n, config.dt, config.steps, pfield.t,
    )
    taken = 0
    for i in range(config.steps):
        relax = config.relax_every > 0 and pfield.nt > 0 and pfield.nt % config.relax_every == 0
        step(pfield, config.dt, scheme=config.integrator, relax=relax, evaluator=evaluator)
        pfield.t += config.dt
        pfield.nt += 1
        taken += 1

        if config.log_every and (i + 1) % config.log_every == 0:
            d = pfield.diagnostics()
            logger.info(
                "step %d: t=%g sigma=[%g, %g] max|U|=%g",
                pfield.nt, d["time"], d["sigma_min"], d["sigma_max"], d["max_speed_at_particles"],
            )
        if callback is not None and callback(pfield, i):
            logger.info("Run stopped by callback after %d step(s).", taken)
            break

    logger.info("Finished run: %d step(s), t=%g", taken, pfield.t)
    return taken
