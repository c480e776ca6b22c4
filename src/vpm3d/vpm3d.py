from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, NamedTuple, TYPE_CHECKING
from collections.abc import Iterator, Sequence

import logging
import math
import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:  # pragma: no cover
    from .operators import (
        FreestreamProvider,
        RelaxationOperator,
        SubfilterScaleModel,
        VelocityJacobianEvaluator,
        ViscousDiffusionOperator,
    )

logger = logging.getLogger(__name__)

FloatArray = NDArray[np.float64]
ArrayLike3D = np.ndarray | Sequence[Sequence[float]]


# ---------------------------
# Errors
# ---------------------------
class ConfigurationMismatch(ValueError):
    """Integrator variant invoked on a field bound to another formulation."""


class NumericDegeneracy(FloatingPointError):
    """Zero circulation magnitude met where the reformulation divides by |Γ|²."""


# ---------------------------
# Utility
# ---------------------------
def _as_float_array3(x: ArrayLike3D, name: str) -> FloatArray:
    """Convert to contiguous float64 (N,3)."""
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim == 1 and arr.shape[0] == 3:
        arr = arr.reshape(1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"{name} must have shape (N,3).")
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} contains non-finite values.")
    return np.ascontiguousarray(arr)


def _as_float_array1(x: float | np.ndarray | Sequence[float], n: int, name: str) -> FloatArray:
    """Broadcast a scalar or (N,) sequence to contiguous float64 (N,)."""
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim == 0:
        arr = np.full(n, float(arr), dtype=np.float64)
    if arr.ndim != 1 or arr.shape[0] != n:
        raise ValueError(f"{name} must be a scalar or have shape (N,).")
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} contains non-finite values.")
    return np.ascontiguousarray(arr)


# ---------------------------
# Formulations
# ---------------------------
@dataclass(frozen=True, slots=True)
class ClassicVPM:
    """Classic VPM: circulation evolves by stretching, core size is fixed."""
    name: Literal["classic"] = "classic"


@dataclass(frozen=True, slots=True)
class ReformulatedVPM:
    """Reformulated VPM: core size evolves through the factor Z(f, g).

    f, g: reformulation parameters (g = 1/5 with f = 0 is the usual choice).
    """
    f: float = 0.0
    g: float = 0.2
    name: Literal["reformulated"] = "reformulated"

    def __post_init__(self) -> None:
        if not (math.isfinite(self.f) and math.isfinite(self.g)):
            raise ValueError("f and g must be finite.")
        if 1.0 + 3.0 * self.f == 0.0:
            raise ValueError("f = -1/3 makes the reformulation singular.")


Formulation = ClassicVPM | ReformulatedVPM

FORMULATION_CLASSIC = ClassicVPM()
FORMULATION_RVPM = ReformulatedVPM(f=0.0, g=0.2)


# ---------------------------
# Regularization kernels
# ---------------------------
@dataclass(frozen=True, slots=True)
class Kernel:
    """Regularization kernel, reduced to the value of zeta at zero offset."""
    name: str
    zeta0: float

    def normalization_at_zero(self) -> float:
        return self.zeta0


SINGULAR = Kernel("singular", 1.0)
GAUSSIAN = Kernel("gaussian", 3.0 / (4.0 * math.pi))
GAUSSIAN_ERF = Kernel("gaussianerf", (2.0 * math.pi) ** -1.5)
WINCKELMANS = Kernel("winckelmans", 15.0 / (8.0 * math.pi))

_KERNELS: dict[str, Kernel] = {k.name: k for k in (SINGULAR, GAUSSIAN, GAUSSIAN_ERF, WINCKELMANS)}


def kernel_by_name(name: str) -> Kernel:
    try:
        return _KERNELS[name]
    except KeyError:
        raise ValueError(f"Unknown kernel {name!r}; expected one of {sorted(_KERNELS)}.") from None


# ---------------------------
# Evaluation / stepping values
# ---------------------------
@dataclass(frozen=True, slots=True)
class EvaluationConfig:
    """What the velocity/Jacobian evaluator is asked to do on one call.

    reset:     clear U and J before accumulating interactions
    reset_sfs: clear the SFS accumulators (C, sfs) before recomputing them
    sfs:       compute the SFS inputs alongside U and J
    """
    reset: bool = True
    reset_sfs: bool = False
    sfs: bool = False


class RKStage(NamedTuple):
    """Coefficients (a, b) of one low-storage Runge-Kutta stage."""
    a: float
    b: float


# Williamson's third-order low-storage scheme
RK3_STAGES: tuple[RKStage, ...] = (
    RKStage(0.0, 1.0 / 3.0),
    RKStage(-5.0 / 9.0, 15.0 / 16.0),
    RKStage(-153.0 / 128.0, 8.0 / 15.0),
)


@dataclass(slots=True)
class NumbaConfig:
    """Toggle Numba JIT for the stretching contraction.
    If enabled, the compiled kernel replaces the einsum contraction.
    """
    enabled: bool = False


# ---------------------------
# Particles
# ---------------------------
class Particle:
    """View on one row of a ParticleField.

    Vector attributes are writable numpy views into the field arrays, so
    ``p.gamma[:] = ...`` updates the field in place.
    """
    __slots__ = ("_field", "index")

    def __init__(self, field: ParticleField, index: int) -> None:
        self._field = field
        self.index = index

    def __repr__(self) -> str:
        return f"Particle(index={self.index}, x={self.x.tolist()}, gamma={self.gamma.tolist()}, sigma={self.sigma:.6g})"

    @property
    def x(self) -> FloatArray: return self._field.x[self.index]

    @property
    def gamma(self) -> FloatArray: return self._field.gamma[self.index]

    @property
    def U(self) -> FloatArray: return self._field.U[self.index]

    @property
    def J(self) -> FloatArray: return self._field.J[self.index]

    @property
    def sfs(self) -> FloatArray: return self._field.sfs[self.index]

    @property
    def q_U(self) -> FloatArray: return self._field.q_U[self.index]

    @property
    def q_str(self) -> FloatArray: return self._field.q_str[self.index]

    @property
    def sigma(self) -> float: return float(self._field.sigma[self.index])

    @sigma.setter
    def sigma(self, value: float) -> None: self._field.sigma[self.index] = value

    @property
    def C(self) -> float: return float(self._field.C[self.index])

    @C.setter
    def C(self, value: float) -> None: self._field.C[self.index] = value

    @property
    def q_sigma(self) -> float: return float(self._field.q_sigma[self.index])

    @property
    def q_sigma2(self) -> float: return float(self._field.q_sigma2[self.index])

    @property
    def vorticity(self) -> FloatArray:
        """Local vorticity ω = ∇×U read from the Jacobian."""
        J = self.J
        return np.array([J[2, 1] - J[1, 2], J[0, 2] - J[2, 0], J[1, 0] - J[0, 1]], dtype=np.float64)


# ---------------------------
# Particle field
# ---------------------------
class ParticleField:
    """3D vortex particles plus the global parameters the time integrators need.

    Particle state lives in one float64 array per quantity (one row per
    particle); iteration yields ``Particle`` views in index order.
    """

    def __init__(
        self,
        positions: ArrayLike3D,
        gamma: ArrayLike3D,
        sigma: float | np.ndarray | Sequence[float],
        *,
        formulation: Formulation = FORMULATION_CLASSIC,
        kernel: Kernel = GAUSSIAN_ERF,
        freestream: FreestreamProvider | None = None,
        evaluator: VelocityJacobianEvaluator | None = None,
        sfs_model: SubfilterScaleModel | None = None,
        viscous: ViscousDiffusionOperator | None = None,
        relaxation: RelaxationOperator | None = None,
        transposed: bool = True,
        t: float = 0.0,
        numba: NumbaConfig | None = None,
        check: bool = True,
    ) -> None:
        from .operators import Inviscid, NoSFS, PedrizzettiRelaxation, UniformFreestream

        x = _as_float_array3(positions, "positions")
        n = x.shape[0]
        g = _as_float_array3(gamma, "gamma")
        if g.shape[0] != n:
            raise ValueError("gamma must match positions length.")
        s = _as_float_array1(sigma, n, "sigma")
        if check and not (s > 0.0).all():
            raise ValueError("sigma must be positive.")
        if not isinstance(formulation, (ClassicVPM, ReformulatedVPM)):
            raise ValueError(f"Unknown formulation: {formulation!r}")

        self.x: FloatArray = x.copy()
        self.gamma: FloatArray = g.copy()
        self.sigma: FloatArray = s.copy()
        self.U: FloatArray = np.zeros((n, 3), dtype=np.float64)
        self.J: FloatArray = np.zeros((n, 3, 3), dtype=np.float64)
        self.C: FloatArray = np.zeros(n, dtype=np.float64)
        self.sfs: FloatArray = np.zeros((n, 3), dtype=np.float64)
        # low-storage RK registers
        self.q_U: FloatArray = np.zeros((n, 3), dtype=np.float64)
        self.q_str: FloatArray = np.zeros((n, 3), dtype=np.float64)
        self.q_sigma: FloatArray = np.zeros(n, dtype=np.float64)
        self.q_sigma2: FloatArray = np.zeros(n, dtype=np.float64)

        self.t: float = float(t)
        self.nt: int = 0
        self.formulation: Formulation = formulation
        self.kernel = kernel
        self.transposed: bool = bool(transposed)
        self.freestream = freestream if freestream is not None else UniformFreestream()
        self.evaluator = evaluator
        self.sfs_model = sfs_model if sfs_model is not None else NoSFS()
        self.viscous = viscous if viscous is not None else Inviscid()
        self.relaxation = relaxation if relaxation is not None else PedrizzettiRelaxation()
        self.numba = numba or NumbaConfig()

    # -------- container protocol --------
    def __len__(self) -> int: return self.x.shape[0]

    def __iter__(self) -> Iterator[Particle]:
        for i in range(self.x.shape[0]):
            yield Particle(self, i)

    def __getitem__(self, index: int) -> Particle:
        n = self.x.shape[0]
        if not -n <= index < n:
            raise IndexError(f"particle index {index} out of range for {n} particles.")
        return Particle(self, index % n)

    def __repr__(self) -> str:
        return (f"ParticleField(n={len(self)}, t={self.t:.6g}, formulation={self.formulation!r}, "
                f"kernel={self.kernel.name!r}, transposed={self.transposed})")

    # -------- properties --------
    @property
    def n(self) -> int: return self.x.shape[0]

    @property
    def total_circulation(self) -> FloatArray: return np.asarray(self.gamma.sum(axis=0), dtype=np.float64)

    # -------- state resets --------
    def reset_evaluation(self, reset_sfs: bool = False) -> None:
        """Zero velocity and Jacobian (and the SFS outputs when asked)."""
        self.U.fill(0.0)
        self.J.fill(0.0)
        if reset_sfs:
            self.C.fill(0.0)
            self.sfs.fill(0.0)

    def reset_carries(self) -> None:
        """Zero every low-storage Runge-Kutta register."""
        self.q_U.fill(0.0)
        self.q_str.fill(0.0)
        self.q_sigma.fill(0.0)
        self.q_sigma2.fill(0.0)

    # -------- globals --------
    def freestream_velocity(self, t: float | None = None) -> FloatArray:
        """Freestream velocity at time t (defaults to the field clock)."""
        u = np.asarray(self.freestream.velocity_at(self.t if t is None else t), dtype=np.float64)
        if u.shape != (3,):
            raise ValueError(f"freestream must return a 3-vector, got shape {u.shape}.")
        return u

    # --------- Utilities ---------
    def suggest_dt(self, cfl: float = 0.3, floor: float = 1e-4) -> float:
        """Heuristic dt so max displacement ≲ cfl * min σ, from the stored velocities."""
        u = self.U + self.freestream_velocity()
        umax = float(np.linalg.norm(u, axis=1).max(initial=0.0))
        if umax <= 0.0:
            logger.warning("suggest_dt: no velocity stored on the field, returning floor=%g", floor)
            return floor
        return max(cfl * float(self.sigma.min()) / umax, floor)

    def diagnostics(self) -> dict[str, Any]:
        speed = np.linalg.norm(self.U, axis=1)
        gnorm = np.linalg.norm(self.gamma, axis=1)
        gsum = float(gnorm.sum())
        if self.n == 0:
            centroid = np.zeros(3)
        elif gsum != 0.0:
            centroid = (gnorm @ self.x) / gsum
        else:
            centroid = self.x.mean(axis=0)
        return {
            "time": self.t,
            "nt": self.nt,
            "n": self.n,
            "total_circulation": self.total_circulation.copy(),
            "centroid": centroid.copy(),
            "sigma_min": float(self.sigma.min(initial=np.inf)),
            "sigma_max": float(self.sigma.max(initial=0.0)),
            "max_speed_at_particles": float(speed.max(initial=0.0)),
        }
