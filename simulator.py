"""
N-Pendulum Simulation
Numerically integrate the equations of motion
"""

from __future__ import annotations

import multiprocessing as mp
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence, Tuple

import dill
import numpy as np

from equations import ChainParameters
from function_generator import build_equations_of_motion

Derivative = Callable[[np.ndarray], np.ndarray]

_worker_equations = None
_worker_angles = None
_worker_t_max = None
_worker_n_points = None
_worker_M = None
_worker_perturbation = None


@dataclass(frozen=True, eq=False)
class Trajectory:
    """Time samples and the state [theta, omega] recorded at each of them."""

    t: np.ndarray
    y: np.ndarray

    @property
    def n(self) -> int:
        return self.y.shape[1] // 2

    @property
    def angles(self) -> np.ndarray:
        return self.y[:, : self.n]

    @property
    def angular_velocities(self) -> np.ndarray:
        return self.y[:, self.n :]

    def __len__(self) -> int:
        return self.t.size

    def positions(self, lengths: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
        return cartesian_positions(self.angles, lengths)


def rk4_step(derivative: Derivative, y: np.ndarray, dt: float) -> np.ndarray:
    k1 = derivative(y)
    k2 = derivative(y + k1 * (dt * 0.5))
    k3 = derivative(y + k2 * (dt * 0.5))
    k4 = derivative(y + k3 * dt)
    return y + (k1 + 2.0 * k2 + 2.0 * k3 + k4) * (dt / 6.0)


def integrate(derivative: Derivative, y0: np.ndarray, t_max: float, n_points: int) -> Trajectory:
    """
    Fixed-step RK4 integration.

    Each of the n_points iterations records the current state and then takes
    one step, so the state produced by the last step is not part of the
    trajectory.
    """
    if n_points < 2:
        raise ValueError(f"n_points must be at least 2, got {n_points}")
    if not t_max > 0:
        raise ValueError(f"t_max must be positive, got {t_max}")

    dt = t_max / (n_points - 1)
    y = np.array(y0, dtype=float)

    t = np.empty(n_points)
    sol = np.empty((n_points, y.size))
    for step in range(n_points):
        t[step] = step * dt
        sol[step] = y
        y = rk4_step(derivative, y, dt)

    return Trajectory(t=t, y=sol)


def solve(
    params: ChainParameters,
    initial_angles: Sequence[float],
    initial_angular_velocities: Sequence[float] | None = None,
    t_max: float = 10.0,
    n_points: int = 1000,
) -> Trajectory:
    """
    Simulate one chain from the given initial condition.

    Parameters:
    -----------
    params : ChainParameters
        Masses and rod lengths
    initial_angles : array
        Angles in radians from the downward vertical
    initial_angular_velocities : array | None
        Angular velocities in rad/s (default: start from rest)
    t_max : float
        Total simulation time
    n_points : int
        Number of recorded samples, spaced t_max / (n_points - 1) apart

    Returns:
    --------
    Trajectory with n_points samples, the first one being the initial state
    """
    N = params.n
    initial_angles = np.asarray(initial_angles, dtype=float)
    if initial_angular_velocities is None:
        initial_angular_velocities = np.zeros(N)
    initial_angular_velocities = np.asarray(initial_angular_velocities, dtype=float)
    if initial_angles.shape != (N,) or initial_angular_velocities.shape != (N,):
        raise ValueError(
            f"Expected {N} initial angles and velocities, got "
            f"{initial_angles.size} and {initial_angular_velocities.size}"
        )

    y0 = np.concatenate([initial_angles, initial_angular_velocities])
    return integrate(build_equations_of_motion(params), y0, t_max, n_points)


def cartesian_positions(angles: np.ndarray, lengths: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert angular positions to Cartesian coordinates.

    angles has shape (..., N); the returned x and y have shape (..., N+1)
    with node 0 at the pivot.
    """
    angles = np.asarray(angles, dtype=float)
    lengths = np.asarray(lengths, dtype=float)
    zeros = np.zeros(angles.shape[:-1] + (1,))
    x = np.concatenate([zeros, np.cumsum(lengths * np.sin(angles), axis=-1)], axis=-1)
    y = np.concatenate([zeros, np.cumsum(-lengths * np.cos(angles), axis=-1)], axis=-1)
    return x, y


def _perturbed_state(initial_angles: np.ndarray, index: int, M: int, perturbation: float) -> np.ndarray:
    angles = initial_angles - index / M * perturbation
    return np.concatenate([angles, np.zeros(initial_angles.size)])


def _worker_init(
    equations_blob: bytes,
    initial_angles: np.ndarray,
    t_max: float,
    n_points: int,
    M: int,
    perturbation: float,
) -> None:
    """Initializer for worker processes; restores shared context."""
    global _worker_equations, _worker_angles, _worker_t_max, _worker_n_points, _worker_M, _worker_perturbation
    _worker_equations = dill.loads(equations_blob)
    _worker_angles = initial_angles
    _worker_t_max = t_max
    _worker_n_points = n_points
    _worker_M = M
    _worker_perturbation = perturbation


def _worker_simulate_single(index: int) -> Tuple[int, np.ndarray]:
    """Integrate a single pendulum instance inside a worker process."""
    if _worker_equations is None:
        raise RuntimeError("Worker equations not initialized")

    u0 = _perturbed_state(_worker_angles, index, _worker_M, _worker_perturbation)
    traj = integrate(_worker_equations, u0, _worker_t_max, _worker_n_points)
    return index, traj.angles


def _accumulate_positions(theta: np.ndarray, lengths: np.ndarray, x: np.ndarray, y: np.ndarray, idx: int) -> None:
    """Write the Cartesian coordinates of one instance into the ensemble arrays."""
    x[:, :, idx], y[:, :, idx] = cartesian_positions(theta, lengths)


def simulate_ensemble(
    params: ChainParameters,
    initial_angles: Sequence[float],
    t_max: float = 10.0,
    n_points: int = 600,
    M: int = 10,
    perturbation: float = 1e-8,
    processes: int | None = None,
    output: str | Path | None = "simulation_results.npz",
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Simulate M instances of the chain with slightly different initial conditions

    Parameters:
    -----------
    params : ChainParameters
        Masses and rod lengths
    initial_angles : array
        Angles (radians) of instance 0; instance i starts at
        initial_angles - i / M * perturbation, from rest
    t_max : float
        Total simulation time
    n_points : int
        Number of recorded samples per instance
    M : int
        Number of pendulum instances
    perturbation : float
        Small perturbation to initial conditions to show chaos
    processes : int | None
        Number of worker processes to use (default: cpu_count, falls back to sequential when <=1)
    output : str | Path | None
        Where to save the results as .npz (skipped when None)

    Returns:
    --------
    t : array
        Time points
    x : array
        X positions of all masses (shape: Frame x N+1 x M)
    y : array
        Y positions of all masses (shape: Frame x N+1 x M)
    """
    if n_points < 2:
        raise ValueError(f"n_points must be at least 2, got {n_points}")
    if M < 1:
        raise ValueError(f"M must be at least 1, got {M}")

    N = params.n
    initial_angles = np.asarray(initial_angles, dtype=float)
    if initial_angles.shape != (N,):
        raise ValueError(f"Expected {N} initial angles, got {initial_angles.size}")

    equations_of_motion = build_equations_of_motion(params)
    t = np.arange(n_points) * (t_max / (n_points - 1))

    # Initialize position arrays
    x = np.zeros((n_points, N + 1, M))
    y = np.zeros((n_points, N + 1, M))

    print(f"Simulating {M} pendulum instances with {N} segments...")
    tic = time.time()

    cpu_total = mp.cpu_count() or 1
    processes = processes or min(M, cpu_total)
    processes = max(1, min(processes, M))

    if processes == 1:
        for ii in range(M):
            if (ii + 1) % 10 == 0 or ii + 1 == M:
                print(f"Progress: {ii+1}/{M}")

            u0 = _perturbed_state(initial_angles, ii, M, perturbation)
            traj = integrate(equations_of_motion, u0, t_max, n_points)
            _accumulate_positions(traj.angles, params.lengths, x, y, ii)
    else:
        print(f"Using {processes} parallel workers...")
        equations_blob = dill.dumps(equations_of_motion)
        ctx = mp.get_context("spawn")
        with ctx.Pool(
            processes=processes,
            initializer=_worker_init,
            initargs=(equations_blob, initial_angles, t_max, n_points, M, perturbation),
        ) as pool:
            chunk_iter: Iterable[Tuple[int, np.ndarray]] = pool.imap_unordered(_worker_simulate_single, range(M))
            for completed, (idx, theta) in enumerate(chunk_iter, start=1):
                _accumulate_positions(theta, params.lengths, x, y, idx)
                if (completed % 10 == 0) or completed == M:
                    print(f"Progress: {completed}/{M}")

    toc = time.time()
    print(f"Simulation completed in {toc-tic:.1f} seconds")

    if output is not None:
        save_results(output, t, x, y, params)

    return t, x, y


def save_results(path: str | Path, t: np.ndarray, x: np.ndarray, y: np.ndarray, params: ChainParameters) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    limit = float(np.sum(params.lengths)) + 0.5
    np.savez(path, t=t, x=x, y=y, N=params.n, M=x.shape[2], limit=limit)
    print(f"Results saved to {path}")
    return path


if __name__ == '__main__':
    # Run simulation
    chain = ChainParameters(masses=np.ones(3), lengths=np.ones(3))
    t, x, y = simulate_ensemble(chain, np.ones(3) * np.pi / 2, t_max=20, n_points=1200, M=100)
