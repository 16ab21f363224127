"""
N-Pendulum Equations
Mass, centripetal and gravity terms of M * alpha + C + G = 0
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

GRAVITY = 9.81


@dataclass(frozen=True, eq=False)
class ChainParameters:
    """Masses and rod lengths of the chain, ordered from the pivot outwards."""

    masses: np.ndarray
    lengths: np.ndarray

    def __post_init__(self) -> None:
        masses = np.array(self.masses, dtype=float).ravel()
        lengths = np.array(self.lengths, dtype=float).ravel()
        if masses.shape != lengths.shape:
            raise ValueError(
                f"masses and lengths must have the same size, got {masses.size} and {lengths.size}"
            )
        masses.flags.writeable = False
        lengths.flags.writeable = False
        object.__setattr__(self, "masses", masses)
        object.__setattr__(self, "lengths", lengths)

    @property
    def n(self) -> int:
        return int(self.masses.size)


def suffix_mass_sums(masses: np.ndarray) -> np.ndarray:
    """Return S[k] = masses[k] + ... + masses[N-1] for every k."""
    masses = np.asarray(masses, dtype=float)
    return np.cumsum(masses[::-1])[::-1]


def _coupling(suffix: np.ndarray) -> np.ndarray:
    # Segment k couples every pair of rods at or above it
    idx = np.arange(suffix.size)
    return suffix[np.maximum.outer(idx, idx)]


def _weighted_coupling(params: ChainParameters) -> np.ndarray:
    """Return S[max(r, c)] * l_r * l_c, shared by the mass matrix and the centripetal term."""
    return _coupling(suffix_mass_sums(params.masses)) * np.outer(params.lengths, params.lengths)


def split_state(state: np.ndarray, n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Split [theta_1..theta_N, omega_1..omega_N] into angles and angular velocities."""
    state = np.asarray(state, dtype=float)
    if state.shape != (2 * n,):
        raise ValueError(f"State vector must have shape ({2 * n},), got {state.shape}")
    return state[:n], state[n:]


def mass_matrix(params: ChainParameters, angles: np.ndarray) -> np.ndarray:
    """
    Mass matrix M(theta).

    M[r, c] = S[max(r, c)] * l_r * l_c * cos(theta_r - theta_c)
    """
    angles = np.asarray(angles, dtype=float)
    delta = angles[:, None] - angles[None, :]
    return _weighted_coupling(params) * np.cos(np.abs(delta))


def centripetal_vector(
    params: ChainParameters,
    angles: np.ndarray,
    angular_velocities: np.ndarray,
) -> np.ndarray:
    """
    Velocity-squared coupling C(theta, omega).

    C[i] = sum_j S[max(i, j)] * l_i * l_j * sin(theta_i - theta_j) * omega_j**2
    """
    angles = np.asarray(angles, dtype=float)
    omega = np.asarray(angular_velocities, dtype=float)
    delta = angles[:, None] - angles[None, :]
    return (_weighted_coupling(params) * np.sin(delta)) @ omega**2


def gravity_vector(params: ChainParameters, angles: np.ndarray) -> np.ndarray:
    """G[i] = S[i] * g * l_i * sin(theta_i)"""
    angles = np.asarray(angles, dtype=float)
    suffix = suffix_mass_sums(params.masses)
    return suffix * GRAVITY * params.lengths * np.sin(angles)


def assemble(params: ChainParameters, state: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Build the three terms of the equations of motion for one state.

    Parameters:
    -----------
    params : ChainParameters
        Masses and lengths of the chain
    state : array
        [theta_1..theta_N, omega_1..omega_N]

    Returns:
    --------
    M : array
        Mass matrix (N x N)
    C : array
        Centripetal vector (N,)
    G : array
        Gravity vector (N,)
    """
    theta, omega = split_state(state, params.n)
    return (
        mass_matrix(params, theta),
        centripetal_vector(params, theta, omega),
        gravity_vector(params, theta),
    )


def total_energy(params: ChainParameters, state: np.ndarray) -> float:
    """Kinetic plus potential energy, with the pivot as the zero of height."""
    theta, omega = split_state(state, params.n)
    kinetic = 0.5 * omega @ mass_matrix(params, theta) @ omega
    suffix = suffix_mass_sums(params.masses)
    potential = -GRAVITY * np.sum(suffix * params.lengths * np.cos(theta))
    return float(kinetic + potential)
