"""Collaborator contracts of the time integrators, plus small default operators.

The integrators only talk to these protocols; any object with the right
methods can be bound to a ParticleField (duck typing is enough).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TYPE_CHECKING
from collections.abc import Callable, Sequence

import logging
import numpy as np

from .vpm3d import EvaluationConfig, FloatArray, RKStage

if TYPE_CHECKING:  # pragma: no cover
    from .vpm3d import ParticleField, Particle

logger = logging.getLogger(__name__)


# ---------------------------
# Protocols
# ---------------------------
class VelocityJacobianEvaluator(Protocol):
    """Fills ``field.U`` and ``field.J`` for every particle (and C/sfs when asked).

    The call is a field-wide barrier: the integrators do not touch particle
    state until it returns.
    """
    def evaluate(self, field: ParticleField, config: EvaluationConfig) -> None: ...


class SubfilterScaleModel(Protocol):
    def enabled(self) -> bool: ...
    def before_evaluation(self, field: ParticleField, stage: RKStage | None = None) -> None: ...
    def after_evaluation(self, field: ParticleField, stage: RKStage | None = None) -> None: ...


class FreestreamProvider(Protocol):
    def velocity_at(self, t: float) -> Sequence[float] | FloatArray: ...


class RegularizationKernel(Protocol):
    def normalization_at_zero(self) -> float: ...


class ViscousDiffusionOperator(Protocol):
    def apply(self, field: ParticleField, dt: float, stage: RKStage | None = None) -> None: ...


class RelaxationOperator(Protocol):
    def apply(self, particle: Particle) -> None: ...


# ---------------------------
# Subfilter-scale
# ---------------------------
class NoSFS:
    """Disabled closure: C stays at zero and the hooks do nothing."""

    def enabled(self) -> bool:
        return False

    def before_evaluation(self, field: ParticleField, stage: RKStage | None = None) -> None:
        pass

    def after_evaluation(self, field: ParticleField, stage: RKStage | None = None) -> None:
        pass


# ---------------------------
# Freestream
# ---------------------------
@dataclass(frozen=True, slots=True)
class UniformFreestream:
    velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def velocity_at(self, t: float) -> FloatArray:
        return np.asarray(self.velocity, dtype=np.float64)


@dataclass(frozen=True, slots=True)
class FunctionFreestream:
    """Wrap a plain ``fn(t) -> (3,)`` callable."""
    fn: Callable[[float], Sequence[float] | FloatArray]

    def velocity_at(self, t: float) -> FloatArray:
        return np.asarray(self.fn(t), dtype=np.float64)


# ---------------------------
# Viscous diffusion
# ---------------------------
class Inviscid:
    """No viscous diffusion."""

    def apply(self, field: ParticleField, dt: float, stage: RKStage | None = None) -> None:
        pass


@dataclass(slots=True)
class CoreSpreading:
    """Core spreading: every particle's σ² grows at the rate 2ν.

    Outside a Runge-Kutta stage σ² += 2ν dt. Inside stage (a, b) the growth
    goes through the field's ``q_sigma2`` register like any other
    low-storage quantity, so three stages add exactly 2ν dt.
    """
    nu: float

    def __post_init__(self) -> None:
        if not (np.isfinite(self.nu) and self.nu >= 0.0):
            raise ValueError("nu must be finite and non-negative.")

    def apply(self, field: ParticleField, dt: float, stage: RKStage | None = None) -> None:
        if self.nu == 0.0:
            return
        rate = 2.0 * self.nu * dt
        if stage is None:
            field.sigma[:] = np.sqrt(field.sigma**2 + rate)
            return
        a, b = stage
        field.q_sigma2[:] = a * field.q_sigma2 + rate
        field.sigma[:] = np.sqrt(field.sigma**2 + b * field.q_sigma2)


# ---------------------------
# Relaxation
# ---------------------------
@dataclass(slots=True)
class PedrizzettiRelaxation:
    """Pedrizzetti relaxation: turn Γ toward the local vorticity, keeping |Γ|.

    Γ ← [(1 - rlxf) Γ + rlxf |Γ| ω/|ω|] / sqrt(b2)
    b2 = 1 - 2 (1 - rlxf) rlxf (1 - Γ·ω / (|Γ| |ω|))

    rlxf: relaxation factor in [0, 1]
    """
    rlxf: float = 0.3

    def __post_init__(self) -> None:
        if not 0.0 <= self.rlxf <= 1.0:
            raise ValueError("rlxf must lie in [0, 1].")

    def apply(self, particle: Particle) -> None:
        omega = particle.vorticity
        nrm_omega = float(np.linalg.norm(omega))
        gamma = particle.gamma
        nrm_gamma = float(np.linalg.norm(gamma))
        if nrm_omega == 0.0 or nrm_gamma == 0.0:
            # no direction to align with
            return
        r = self.rlxf
        b2 = 1.0 - 2.0 * (1.0 - r) * r * (1.0 - float(gamma @ omega) / (nrm_gamma * nrm_omega))
        gamma[:] = ((1.0 - r) * gamma + r * nrm_gamma * omega / nrm_omega) / np.sqrt(b2)
