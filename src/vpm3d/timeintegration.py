"""Time integration of a vortex particle field.

Four steppers, one per (scheme, formulation) pair:

    euler_classic        first-order explicit Euler, classic VPM
    euler_reformulated   first-order explicit Euler, reformulated VPM
    rk3_classic          third-order low-storage Runge-Kutta, classic VPM
    rk3_reformulated     third-order low-storage Runge-Kutta, reformulated VPM

Every stepper has the signature ``fn(field, dt, *, relax=False, evaluator=None)``,
mutates the field in place and leaves ``field.t`` alone (the caller owns the
clock, see ``api.run``). Per-particle updates are whole-array expressions on
per-call temporaries, so nothing is shared between particles.
"""
from __future__ import annotations

from collections.abc import Callable

import logging
import numpy as np
from numba import njit

from .operators import VelocityJacobianEvaluator
from .vpm3d import (
    ClassicVPM,
    ConfigurationMismatch,
    EvaluationConfig,
    FloatArray,
    NumericDegeneracy,
    ParticleField,
    RK3_STAGES,
    RKStage,
    ReformulatedVPM,
)

logger = logging.getLogger(__name__)

Stepper = Callable[..., None]


# ---------------------------
# Kernels
# ---------------------------
@njit(nogil=True)
def _stretching_jit(J: np.ndarray, gamma: np.ndarray, transposed: bool) -> np.ndarray:
    n = gamma.shape[0]
    out = np.zeros((n, 3), dtype=np.float64)
    for p in range(n):
        for i in range(3):
            acc = 0.0
            for k in range(3):
                if transposed:
                    acc += J[p, k, i] * gamma[p, k]
                else:
                    acc += J[p, i, k] * gamma[p, k]
            out[p, i] = acc
    return out


def stretching(J: FloatArray, gamma: FloatArray, transposed: bool, *, jit: bool = False) -> FloatArray:
    """Vortex stretching S of every particle.

    classic:    S_i = sum_k J[i, k] Γ_k   ((Γ·∇)U)
    transposed: S_i = sum_k J[k, i] Γ_k   ((Γ·∇')U)
    """
    if jit:
        return _stretching_jit(np.ascontiguousarray(J), np.ascontiguousarray(gamma), bool(transposed))
    if transposed:
        return np.einsum("nki,nk->ni", J, gamma)
    return np.einsum("nik,nk->ni", J, gamma)


def sfs_term(field: ParticleField, zeta0: float) -> FloatArray:
    """SFS contribution Cϵ = C · sfs · σ³ / zeta(0) of every particle."""
    return field.C[:, None] * field.sfs * (field.sigma**3 / zeta0)[:, None]


def z_factor(S: FloatArray, gamma: FloatArray, sfs_eps: FloatArray, f: float, g: float) -> FloatArray:
    """Core-size factor Z of the reformulated VPM.

    Z = [ (f+g)/(1+3f) S·Γ - f/(1+3f) Cϵ·Γ ] / |Γ|²

    Raises NumericDegeneracy when a particle has zero circulation.
    """
    num = (f + g) / (1.0 + 3.0 * f) * np.einsum("ni,ni->n", S, gamma)
    num -= f / (1.0 + 3.0 * f) * np.einsum("ni,ni->n", sfs_eps, gamma)
    den = np.einsum("ni,ni->n", gamma, gamma)
    with np.errstate(divide="raise", invalid="raise"):
        try:
            return num / den
        except FloatingPointError as err:
            bad = np.flatnonzero(den == 0.0)
            raise NumericDegeneracy(
                f"zero circulation magnitude at particle(s) {bad.tolist()}; Z is undefined."
            ) from err


# ---------------------------
# Shared stages
# ---------------------------
def _check_formulation(field: ParticleField, expected: type, fname: str) -> None:
    if not isinstance(field.formulation, expected):
        raise ConfigurationMismatch(
            f"{fname} cannot step a field with formulation {field.formulation.name!r}."
        )


def _resolve(field: ParticleField, evaluator: VelocityJacobianEvaluator | None, relax: bool) -> VelocityJacobianEvaluator:
    ev = evaluator if evaluator is not None else field.evaluator
    if ev is None:
        raise ValueError("no velocity/Jacobian evaluator bound to the field or given.")
    if relax and field.relaxation is None:
        raise ValueError("relax=True needs a relaxation operator on the field.")
    return ev


def _evaluate(
    field: ParticleField,
    evaluator: VelocityJacobianEvaluator,
    config: EvaluationConfig,
    stage: RKStage | None = None,
) -> None:
    field.sfs_model.before_evaluation(field, stage)
    evaluator.evaluate(field, config)
    field.sfs_model.after_evaluation(field, stage)


def _relax_particles(field: ParticleField) -> None:
    relaxation = field.relaxation
    for p in field:
        relaxation.apply(p)


def _relax_after_rk(field: ParticleField, evaluator: VelocityJacobianEvaluator) -> None:
    # J is taken at the end-of-step positions but without SFS; relaxation
    # then runs once per particle.
    field.reset_evaluation()
    evaluator.evaluate(field, EvaluationConfig())
    _relax_particles(field)


# ---------------------------
# Euler
# ---------------------------
def euler_classic(
    field: ParticleField,
    dt: float,
    *,
    relax: bool = False,
    evaluator: VelocityJacobianEvaluator | None = None,
) -> None:
    """Advance the field by dt with explicit Euler, classic VPM."""
    _check_formulation(field, ClassicVPM, "euler_classic")
    ev = _resolve(field, evaluator, relax)
    transposed = field.transposed
    logger.debug("euler_classic: n=%d dt=%g relax=%s transposed=%s", field.n, dt, relax, transposed)

    sfs_on = bool(field.sfs_model.enabled())
    _evaluate(field, ev, EvaluationConfig(reset=True, reset_sfs=sfs_on, sfs=sfs_on))

    uinf = field.freestream_velocity()
    zeta0 = field.kernel.normalization_at_zero()

    S = stretching(field.J, field.gamma, transposed, jit=field.numba.enabled)
    eps = sfs_term(field, zeta0)

    field.x += dt * (field.U + uinf)
    field.gamma += dt * S - dt * eps

    if relax:
        _relax_particles(field)

    field.viscous.apply(field, dt)


def euler_reformulated(
    field: ParticleField,
    dt: float,
    *,
    relax: bool = False,
    evaluator: VelocityJacobianEvaluator | None = None,
) -> None:
    """Advance the field by dt with explicit Euler, reformulated VPM.

    On top of the classic update the core size evolves through Z:

        Γ += dt (S - 3ZΓ - Cϵ)
        σ -= dt σ Z

    Every particle must carry non-zero circulation.
    """
    _check_formulation(field, ReformulatedVPM, "euler_reformulated")
    ev = _resolve(field, evaluator, relax)
    transposed = field.transposed
    f, g = field.formulation.f, field.formulation.g
    logger.debug("euler_reformulated: n=%d dt=%g f=%g g=%g relax=%s", field.n, dt, f, g, relax)

    sfs_on = bool(field.sfs_model.enabled())
    _evaluate(field, ev, EvaluationConfig(reset=True, reset_sfs=sfs_on, sfs=sfs_on))

    uinf = field.freestream_velocity()
    zeta0 = field.kernel.normalization_at_zero()

    S = stretching(field.J, field.gamma, transposed, jit=field.numba.enabled)
    eps = sfs_term(field, zeta0)
    Z = z_factor(S, field.gamma, eps, f, g)

    field.x += dt * (field.U + uinf)
    field.gamma += dt * (S - 3.0 * Z[:, None] * field.gamma - eps)
    field.sigma -= dt * field.sigma * Z

    if relax:
        _relax_particles(field)

    field.viscous.apply(field, dt)


# ---------------------------
# Low-storage RK3
# ---------------------------
def rk3_classic(
    field: ParticleField,
    dt: float,
    *,
    relax: bool = False,
    evaluator: VelocityJacobianEvaluator | None = None,
) -> None:
    """Advance the field by dt with third-order low-storage Runge-Kutta, classic VPM.

    Stage (a, b) updates

        q_U   = a q_U   + dt (U + U∞);        x += b q_U
        q_str = a q_str + dt (S - Cϵ);        Γ += b q_str

    with the registers zeroed on entry. Relaxation, if asked, happens once
    after the last stage.
    """
    _check_formulation(field, ClassicVPM, "rk3_classic")
    ev = _resolve(field, evaluator, relax)
    transposed = field.transposed
    logger.debug("rk3_classic: n=%d dt=%g relax=%s transposed=%s", field.n, dt, relax, transposed)

    uinf = field.freestream_velocity()
    zeta0 = field.kernel.normalization_at_zero()
    field.reset_carries()

    for stage in RK3_STAGES:
        a, b = stage
        _evaluate(field, ev, EvaluationConfig(reset=True, reset_sfs=True, sfs=True), stage)

        S = stretching(field.J, field.gamma, transposed, jit=field.numba.enabled)
        eps = sfs_term(field, zeta0)

        field.q_U[:] = a * field.q_U + dt * (field.U + uinf)
        field.x += b * field.q_U

        field.q_str[:] = a * field.q_str + dt * (S - eps)
        field.gamma += b * field.q_str

        field.viscous.apply(field, dt, stage)

    if relax:
        _relax_after_rk(field, ev)


def rk3_reformulated(
    field: ParticleField,
    dt: float,
    *,
    relax: bool = False,
    evaluator: VelocityJacobianEvaluator | None = None,
) -> None:
    """Advance the field by dt with third-order low-storage Runge-Kutta, reformulated VPM.

    As rk3_classic, plus a core-size register:

        q_str   = a q_str   + dt (S - 3ZΓ - Cϵ);  Γ += b q_str
        q_sigma = a q_sigma - dt σ Z;             σ += b q_sigma
    """
    _check_formulation(field, ReformulatedVPM, "rk3_reformulated")
    ev = _resolve(field, evaluator, relax)
    transposed = field.transposed
    f, g = field.formulation.f, field.formulation.g
    logger.debug("rk3_reformulated: n=%d dt=%g f=%g g=%g relax=%s", field.n, dt, f, g, relax)

    uinf = field.freestream_velocity()
    zeta0 = field.kernel.normalization_at_zero()
    field.reset_carries()

    for stage in RK3_STAGES:
        a, b = stage
        _evaluate(field, ev, EvaluationConfig(reset=True, reset_sfs=True, sfs=True), stage)

        S = stretching(field.J, field.gamma, transposed, jit=field.numba.enabled)
        eps = sfs_term(field, zeta0)
        Z = z_factor(S, field.gamma, eps, f, g)

        field.q_U[:] = a * field.q_U + dt * (field.U + uinf)
        field.x += b * field.q_U

        field.q_str[:] = a * field.q_str + dt * (S - 3.0 * Z[:, None] * field.gamma - eps)
        field.q_sigma[:] = a * field.q_sigma - dt * field.sigma * Z

        field.gamma += b * field.q_str
        field.sigma += b * field.q_sigma

        field.viscous.apply(field, dt, stage)

    if relax:
        _relax_after_rk(field, ev)


# ---------------------------
# Dispatch
# ---------------------------
INTEGRATORS: dict[tuple[str, str], Stepper] = {
    ("euler", "classic"): euler_classic,
    ("euler", "reformulated"): euler_reformulated,
    ("rk3", "classic"): rk3_classic,
    ("rk3", "reformulated"): rk3_reformulated,
}


def step(
    field: ParticleField,
    dt: float,
    *,
    scheme: str = "rk3",
    relax: bool = False,
    evaluator: VelocityJacobianEvaluator | None = None,
) -> None:
    """Advance one step with the stepper matching ``scheme`` and the field's formulation."""
    try:
        fn = INTEGRATORS[(scheme, field.formulation.name)]
    except KeyError:
        raise ValueError(f"Unknown integrator scheme {scheme!r}; expected 'euler' or 'rk3'.") from None
    fn(field, dt, relax=relax, evaluator=evaluator)
