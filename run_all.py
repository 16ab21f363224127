"""
Run complete N-Pendulum simulation pipeline
"""

import numpy as np

import animator
import request_handler
import simulator
from equations import total_energy


def main():
    """
    Complete pipeline:
    1. Simulate one chain from a request payload
    2. Run a perturbed ensemble of the same chain
    3. Create animation/video
    """

    print("=" * 60)
    print("N-PENDULUM SIMULATION")
    print("=" * 60)
    print()

    # Configuration
    N = 3                      # Number of pendulum segments
    masses = [1.0] * N         # kg
    lengths = [1.0] * N        # m
    angles_deg = [90.0, 45.0, 0.0]
    T = 20.0                   # Simulation time (seconds)
    n_points = 1201            # Samples per run
    M = 20                     # Number of pendulum instances
    perturbation = 1e-6        # Initial condition perturbation
    save_video = True

    print(f"Configuration:")
    print(f"  N (segments): {N}")
    print(f"  Masses: {masses}")
    print(f"  Lengths: {lengths}")
    print(f"  Initial angles (deg): {angles_deg}")
    print(f"  Duration: {T} seconds, {n_points} samples")
    print(f"  Number of instances: {M}")
    print(f"  Perturbation: {perturbation:.2e}")
    print()

    # Step 1: Single run
    print("STEP 1: Simulating a single chain...")
    print("-" * 60)
    payload = {
        "n": N,
        "masses": ",".join(str(m) for m in masses),
        "lengths": ",".join(str(l) for l in lengths),
        "initial_angles": ",".join(str(a) for a in angles_deg),
        "t_max": T,
        "n_points": n_points,
    }
    request, trajectory = request_handler.simulate_request(payload)
    params = request.params
    e_start = total_energy(params, trajectory.y[0])
    e_end = total_energy(params, trajectory.y[-1])
    print(f"Energy: start {e_start:.6f} J, end {e_end:.6f} J (drift {e_end - e_start:+.2e} J)")
    x, y = trajectory.positions(params.lengths)
    plot_path = animator.plot_trajectories(x, y, "trajectories.png", axis_limit=float(np.sum(lengths)) + 0.5)
    print(f"Trajectory plot saved to {plot_path}")
    print()

    # Step 2: Ensemble
    print("STEP 2: Running numerical simulation...")
    print("-" * 60)
    simulator.simulate_ensemble(
        params,
        request.initial_angles,
        t_max=T,
        n_points=n_points,
        M=M,
        perturbation=perturbation,
    )
    print()

    # Step 3: Create animation
    print("STEP 3: Creating animation...")
    print("-" * 60)
    animator.animate_pendulum(
        save_video=save_video,
        video_filename=f'{N}_pendulum_{M}_instances.mp4',
        playback_speed=(n_points - 1) / T / 60,
    )
    print()

    print("=" * 60)
    print("COMPLETE!")
    print("=" * 60)


if __name__ == '__main__':
    main()
