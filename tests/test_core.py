from __future__ import annotations

import math

import numpy as np
import pytest

from vpm3d import (
    ClassicVPM,
    FunctionFreestream,
    GAUSSIAN_ERF,
    ParticleField,
    ReformulatedVPM,
    WINCKELMANS,
    kernel_by_name,
)


def test_field_shapes():
    x = np.array([[0.0, 0.0, 0.0], [0.1, 0.0, 0.0]], dtype=float)
    g = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, -1.0]], dtype=float)
    field = ParticleField(x, g, sigma=0.05)
    assert len(field) == 2
    assert field.U.shape == (2, 3)
    assert field.J.shape == (2, 3, 3)
    assert field.sigma.shape == (2,)
    np.testing.assert_array_equal(field.sigma, [0.05, 0.05])
    assert field.formulation == ClassicVPM()
    assert field.kernel is GAUSSIAN_ERF
    assert field.transposed is True


def test_inputs_are_copied():
    x = np.zeros((1, 3))
    field = ParticleField(x, [[1.0, 0.0, 0.0]], 0.1)
    field.x[0, 0] = 5.0
    assert x[0, 0] == 0.0


@pytest.mark.parametrize(
    "positions,gamma,sigma,match",
    [
        (np.zeros((2, 2)), np.zeros((2, 3)), 0.1, "positions"),
        (np.zeros((2, 3)), np.zeros((3, 3)), 0.1, "gamma must match"),
        (np.zeros((2, 3)), np.zeros((2, 3)), [0.1, 0.1, 0.1], "sigma"),
        (np.zeros((2, 3)), np.zeros((2, 3)), 0.0, "sigma must be positive"),
        (np.full((2, 3), np.nan), np.zeros((2, 3)), 0.1, "non-finite"),
    ],
)
def test_field_validation(positions, gamma, sigma, match):
    with pytest.raises(ValueError, match=match):
        ParticleField(positions, gamma, sigma)


def test_particle_view_writes_through():
    field = ParticleField(np.zeros((3, 3)), np.ones((3, 3)), [0.1, 0.2, 0.3])
    p = field[1]
    p.gamma[:] = [1.0, 2.0, 3.0]
    p.x[2] = 4.0
    p.sigma = 0.5
    p.C = 0.25
    np.testing.assert_array_equal(field.gamma[1], [1.0, 2.0, 3.0])
    assert field.x[1, 2] == 4.0
    assert field.sigma[1] == 0.5
    assert field.C[1] == 0.25
    assert field[-1].index == 2
    with pytest.raises(IndexError):
        field[3]


def test_iteration_is_index_ordered_and_restartable():
    field = ParticleField(np.zeros((4, 3)), np.ones((4, 3)), 0.1)
    assert [p.index for p in field] == [0, 1, 2, 3]
    assert [p.index for p in field] == [0, 1, 2, 3]


def test_particle_vorticity_from_jacobian():
    field = ParticleField(np.zeros((1, 3)), np.ones((1, 3)), 0.1)
    w = 1.5
    field.J[0] = np.array([[0.0, -w, 0.0], [w, 0.0, 0.0], [0.0, 0.0, 0.0]])
    np.testing.assert_allclose(field[0].vorticity, [0.0, 0.0, 2.0 * w])


def test_resets():
    field = ParticleField(np.zeros((2, 3)), np.ones((2, 3)), 0.1)
    for arr in (field.U, field.J, field.C, field.sfs, field.q_U, field.q_str, field.q_sigma, field.q_sigma2):
        arr[...] = 1.0
    field.reset_evaluation()
    assert not field.U.any() and not field.J.any()
    assert field.C.all() and field.sfs.all()
    field.reset_evaluation(reset_sfs=True)
    assert not field.C.any() and not field.sfs.any()
    field.reset_carries()
    for arr in (field.q_U, field.q_str, field.q_sigma, field.q_sigma2):
        assert not arr.any()


def test_reformulated_parameters():
    assert ReformulatedVPM().name == "reformulated"
    with pytest.raises(ValueError):
        ReformulatedVPM(f=-1.0 / 3.0, g=0.0)
    with pytest.raises(ValueError):
        ReformulatedVPM(f=math.inf)


def test_kernels():
    assert kernel_by_name("gaussianerf") is GAUSSIAN_ERF
    assert math.isclose(GAUSSIAN_ERF.normalization_at_zero(), 1.0 / (2.0 * math.pi) ** 1.5)
    assert math.isclose(WINCKELMANS.normalization_at_zero(), 15.0 / (8.0 * math.pi))
    with pytest.raises(ValueError, match="Unknown kernel"):
        kernel_by_name("nope")


def test_freestream_sampled_at_field_time():
    field = ParticleField(np.zeros((1, 3)), np.ones((1, 3)), 0.1,
                          freestream=FunctionFreestream(lambda t: (t, 2.0 * t, 0.0)), t=0.5)
    np.testing.assert_array_equal(field.freestream_velocity(), [0.5, 1.0, 0.0])
    np.testing.assert_array_equal(field.freestream_velocity(2.0), [2.0, 4.0, 0.0])

    field.freestream = FunctionFreestream(lambda t: (1.0, 0.0))
    with pytest.raises(ValueError, match="3-vector"):
        field.freestream_velocity()


def test_diagnostics_and_suggest_dt():
    field = ParticleField([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]], [[0.0, 0.0, 1.0], [0.0, 0.0, 3.0]], [0.1, 0.2])
    assert field.suggest_dt(floor=1e-3) == 1e-3
    field.U[:, 0] = 2.0
    assert math.isclose(field.suggest_dt(cfl=0.5), 0.5 * 0.1 / 2.0)
    d = field.diagnostics()
    np.testing.assert_array_equal(d["total_circulation"], [0.0, 0.0, 4.0])
    np.testing.assert_allclose(d["centroid"], [0.75, 0.0, 0.0])
    assert d["sigma_min"] == 0.1 and d["sigma_max"] == 0.2
    assert d["max_speed_at_particles"] == 2.0
    assert d["n"] == 2


@pytest.mark.filterwarnings("error::RuntimeWarning")
def test_diagnostics_of_empty_field():
    field = ParticleField(np.zeros((0, 3)), np.zeros((0, 3)), 0.1)
    d = field.diagnostics()
    assert d["n"] == 0
    np.testing.assert_array_equal(d["centroid"], [0.0, 0.0, 0.0])
    np.testing.assert_array_equal(d["total_circulation"], [0.0, 0.0, 0.0])
    assert d["max_speed_at_particles"] == 0.0


def test_diagnostics_centroid_without_circulation():
    field = ParticleField([[0.0, 0.0, 0.0], [1.0, 2.0, 0.0]], np.zeros((2, 3)), 0.1)
    np.testing.assert_allclose(field.diagnostics()["centroid"], [0.5, 1.0, 0.0])
