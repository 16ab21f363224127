"""Tests for the acceleration solve and the equations-of-motion closure."""

import dill
import numpy as np
import pytest

from equations import GRAVITY, ChainParameters, assemble
from function_generator import (
    IntegrationDivergedError,
    SingularSystemError,
    angular_accelerations,
    build_equations_of_motion,
    solve_accelerations,
)


def test_simple_pendulum_acceleration():
    """alpha = -(g / l) sin(theta) for a single rod."""
    for mass, length, theta, omega in [(1.0, 1.0, 0.3, 0.0), (2.5, 0.4, -1.2, 3.0), (0.1, 7.0, 3.0, -1.0)]:
        params = ChainParameters(masses=[mass], lengths=[length])
        alpha = angular_accelerations(params, np.array([theta, omega]))
        assert alpha.shape == (1,)
        assert abs(alpha[0] - (-(GRAVITY / length) * np.sin(theta))) < 1e-9


def test_horizontal_double_pendulum_initial_acceleration():
    """Released horizontally from rest, only the upper rod accelerates at first."""
    params = ChainParameters(masses=[1.0, 1.0], lengths=[1.0, 1.0])
    alpha = angular_accelerations(params, np.array([np.pi / 2, np.pi / 2, 0.0, 0.0]))
    np.testing.assert_allclose(alpha, [-GRAVITY, 0.0], atol=1e-12)


def test_solve_accelerations_matches_numpy():
    rng = np.random.default_rng(3)
    A = rng.normal(size=(6, 6))
    mass = A @ A.T + 6 * np.eye(6)
    rhs = rng.normal(size=6)
    np.testing.assert_allclose(solve_accelerations(mass, rhs), np.linalg.solve(mass, rhs), rtol=1e-10)


def test_solve_accelerations_for_chain():
    rng = np.random.default_rng(11)
    n = 10
    params = ChainParameters(masses=rng.uniform(0.5, 2.0, n), lengths=rng.uniform(0.5, 2.0, n))
    state = np.concatenate([rng.uniform(-np.pi, np.pi, n), rng.uniform(-1.0, 1.0, n)])
    M, C, G = assemble(params, state)
    alpha = angular_accelerations(params, state)
    np.testing.assert_allclose(alpha, np.linalg.solve(M, -(C + G)), rtol=1e-6, atol=1e-8)


def test_zero_matrix_is_singular():
    with pytest.raises(SingularSystemError, match="singular"):
        solve_accelerations(np.zeros((2, 2)), np.ones(2))


def test_zero_length_rod_is_singular():
    params = ChainParameters(masses=[1.0, 1.0], lengths=[1.0, 0.0])
    with pytest.raises(SingularSystemError):
        angular_accelerations(params, np.array([0.5, 0.2, 0.0, 0.0]))


def test_zero_mass_chain_is_singular():
    params = ChainParameters(masses=[0.0], lengths=[1.0])
    with pytest.raises(SingularSystemError):
        angular_accelerations(params, np.array([0.5, 0.0]))


def test_non_finite_input_is_rejected():
    with pytest.raises(IntegrationDivergedError, match="non-finite"):
        solve_accelerations(np.array([[1.0, np.nan], [np.nan, 1.0]]), np.ones(2))
    with pytest.raises(IntegrationDivergedError, match="reduce t_max"):
        solve_accelerations(np.eye(2), np.array([np.inf, 0.0]))


def test_singular_error_is_not_a_value_error():
    """Singular systems must stay distinguishable from input validation errors."""
    assert issubclass(SingularSystemError, RuntimeError)
    assert not issubclass(SingularSystemError, ValueError)


def test_diverged_state_is_a_singular_system():
    """Callers that only catch SingularSystemError still see divergence."""
    assert issubclass(IntegrationDivergedError, SingularSystemError)


def test_singular_matrix_is_not_reported_as_divergence():
    with pytest.raises(SingularSystemError) as excinfo:
        solve_accelerations(np.zeros((2, 2)), np.ones(2))
    assert not isinstance(excinfo.value, IntegrationDivergedError)


def test_equations_of_motion_returns_velocity_and_acceleration():
    params = ChainParameters(masses=[1.0, 2.0, 0.5], lengths=[1.0, 0.7, 1.3])
    state = np.array([0.3, -0.2, 1.0, 0.5, 0.0, -1.5])
    equations_of_motion = build_equations_of_motion(params)

    dydt = equations_of_motion(state)

    assert dydt.shape == (6,)
    np.testing.assert_array_equal(dydt[:3], state[3:])
    np.testing.assert_allclose(dydt[3:], angular_accelerations(params, state))


def test_equations_of_motion_survive_dill_round_trip():
    params = ChainParameters(masses=[1.0, 1.0], lengths=[1.0, 2.0])
    equations_of_motion = build_equations_of_motion(params)
    restored = dill.loads(dill.dumps(equations_of_motion))

    state = np.array([0.4, -0.1, 0.2, 0.3])
    np.testing.assert_array_equal(restored(state), equations_of_motion(state))
