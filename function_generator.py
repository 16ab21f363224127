from __future__ import annotations

import warnings
from typing import Callable

import numpy as np
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve

from equations import ChainParameters, assemble


class SingularSystemError(RuntimeError):
    """The mass matrix cannot be inverted for the current state."""


class IntegrationDivergedError(SingularSystemError):
    """The state blew up to inf or nan before the linear solve."""


def solve_accelerations(mass: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """
    Solve M * alpha = rhs with an LU factorization (partial pivoting).

    Raises SingularSystemError when a pivot is numerically zero, and
    IntegrationDivergedError when the system already contains non-finite values.
    """
    mass = np.asarray(mass, dtype=float)
    rhs = np.asarray(rhs, dtype=float)
    if not (np.all(np.isfinite(mass)) and np.all(np.isfinite(rhs))):
        raise IntegrationDivergedError(
            "state diverged to non-finite values; reduce t_max or increase n_points"
        )

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", LinAlgWarning)
        lu, piv = lu_factor(mass, check_finite=False)

    pivots = np.abs(np.diag(lu))
    tol = mass.shape[0] * np.finfo(float).eps * np.max(np.abs(mass), initial=0.0)
    bad = np.flatnonzero(pivots <= tol)
    if bad.size:
        raise SingularSystemError(
            f"Mass matrix is singular (pivot {bad[0] + 1} of {mass.shape[0]} is {pivots[bad[0]]:.3e}); "
            "check for zero or negative masses and lengths"
        )

    alpha = lu_solve((lu, piv), rhs, check_finite=False)
    if not np.all(np.isfinite(alpha)):
        raise SingularSystemError("Linear solve produced non-finite accelerations")
    return alpha


def angular_accelerations(params: ChainParameters, state: np.ndarray) -> np.ndarray:
    """Return alpha = M^-1 (-C - G) for one state vector."""
    M, C, G = assemble(params, state)
    return solve_accelerations(M, -(C + G))


def build_equations_of_motion(params: ChainParameters) -> Callable[[np.ndarray], np.ndarray]:
    """
    equations of motion for N-link pendulum.
    """

    N = params.n

    def equations_of_motion(u: np.ndarray) -> np.ndarray:
        """Return time derivative of state [theta, omega]."""
        u = np.asarray(u, dtype=float)
        omega = u[N:]
        theta_ddot = angular_accelerations(params, u)
        return np.concatenate([omega, theta_ddot])

    return equations_of_motion
