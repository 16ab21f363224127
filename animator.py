"""
N-Pendulum Animation
Create visualization and video of the simulation results
"""

from pathlib import Path

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation, FFMpegWriter

SEGMENT_COLORS = ['#1f77b4', '#d62728', '#2ca02c', '#17becf', '#9467bd', '#e377c2', '#bcbd22']


def load_results(results_file='simulation_results.npz'):
    """Return t, x, y, N, M and the axis limit stored by simulator.save_results."""
    with np.load(results_file) as data:
        t = data['t']
        x = data['x']
        y = data['y']
        N = int(data['N'])
        M = int(data['M'])
        if 'limit' in data.files:
            limit = float(data['limit'])
        else:
            limit = max(1.0, N * 1.2)
    return t, x, y, N, M, limit


def build_animation(
    x: np.ndarray,
    y: np.ndarray,
    axis_limit: float,
    render_fps: int = 60,
    trace_length: int = 100,
):
    """
    Set up the figure and FuncAnimation for position arrays of shape
    (Frame, N+1, M). Returns (fig, anim).
    """
    Frame, _, M = x.shape

    # Set up the figure with dark background
    dpi = 100
    fig = plt.figure(figsize=(16, 9), dpi=dpi, facecolor='black')
    ax = fig.add_subplot(111)
    ax.set_facecolor('black')
    ax.set_aspect('equal')
    ax.axis('off')
    ax.set_xlim(-axis_limit, axis_limit)
    ax.set_ylim(-axis_limit, 0.25 * axis_limit)

    # Initialize plot objects
    origin_point, = ax.plot([0], [0], 'o', markersize=6, color='red', zorder=3)
    pendulum_points = []  # Points for the masses
    pendulum_strings = []  # Lines for the strings
    pendulum_traces = []  # Tail of the last mass

    for _ in range(M):
        trace, = ax.plot([], [], '-', linewidth=1.5, color='red', alpha=0.6, zorder=0)
        point, = ax.plot([], [], 'o', markersize=8, color='yellow', zorder=2)
        string, = ax.plot([], [], '-', linewidth=1, color='white', zorder=1)
        pendulum_traces.append(trace)
        pendulum_points.append(point)
        pendulum_strings.append(string)

    artists = [origin_point] + pendulum_points + pendulum_strings + pendulum_traces

    def init():
        """Initialize animation"""
        origin_point.set_data([0], [0])
        for line in pendulum_points + pendulum_strings + pendulum_traces:
            line.set_data([], [])
        return artists

    def update(frame):
        """Update animation frame"""
        start = max(0, frame - trace_length)
        for k in range(M):
            pendulum_points[k].set_data(x[frame, 1:, k], y[frame, 1:, k])
            pendulum_strings[k].set_data(x[frame, :, k], y[frame, :, k])
            pendulum_traces[k].set_data(x[start:frame + 1, -1, k], y[start:frame + 1, -1, k])

        if (frame + 1) % 30 == 0:
            progress = 100 * (frame + 1) / Frame
            print(f'Animating: {progress:.1f}%', end='\r')

        return artists

    anim = FuncAnimation(
        fig,
        update,
        frames=Frame,
        init_func=init,
        blit=True,
        interval=1000 / render_fps,
    )
    return fig, anim


def animate_pendulum(
    save_video: bool = True,
    video_filename: str = 'pendulum_animation.mp4',
    playback_speed: float = 1.0,
    results_file: str = 'simulation_results.npz',
    trace_length: int = 100,
    base_fps: int = 60,
):
    """
    Create animation of N-pendulum simulation.

    Parameters
    ----------
    save_video : bool
        Whether to save animation as video (otherwise it is shown).
    video_filename : str
        Output video filename.
    playback_speed : float
        Relative playback multiplier (>1 faster, <1 slower).
    results_file : str
        .npz written by simulator.simulate_ensemble.
    trace_length : int
        Number of past frames drawn as a tail behind the last mass.
    base_fps : int
        Frame rate corresponding to real-time playback.
    """

    print("Loading simulation results...")
    try:
        t, x, y, N, M, axis_limit = load_results(results_file)
    except FileNotFoundError:
        print(f"Error: {results_file} not found. Please run simulator.py first.")
        return

    Frame = len(t)
    playback_speed = max(playback_speed, 1e-3)
    render_fps = max(1, int(round(base_fps * playback_speed)))
    actual_speed = render_fps / base_fps
    print(f"Loaded {Frame} frames for {M} pendulums with {N} segments")

    print(f"Creating animation at {render_fps} fps (~{actual_speed:.2f}x speed)...")
    fig, anim = build_animation(x, y, axis_limit, render_fps=render_fps, trace_length=trace_length)

    if save_video:
        print(f"Saving video to {video_filename}...")
        writer = FFMpegWriter(fps=render_fps, bitrate=5000, extra_args=['-vcodec', 'libx264'])
        anim.save(video_filename, writer=writer, dpi=fig.dpi)
        print("Video saved successfully!")
    else:
        print("Displaying animation (close window to exit)...")
        plt.show()

    plt.close(fig)
    return anim


def plot_trajectories(x: np.ndarray, y: np.ndarray, outpath, axis_limit=None):
    """
    Plot the path of every mass of one pendulum instance.

    x and y have shape (Frame, N+1); node 0 is the pivot.
    """
    outpath = Path(outpath)
    outpath.parent.mkdir(parents=True, exist_ok=True)
    N = x.shape[1] - 1
    if axis_limit is None:
        axis_limit = float(np.max(np.abs(np.concatenate([x, y])))) + 0.5

    fig = plt.figure(figsize=(6, 6))
    ax = fig.add_subplot(111)
    ax.set_aspect('equal')
    ax.grid(True, color='#eee')
    ax.axhline(0, color='#ccc', linewidth=1)
    ax.axvline(0, color='#ccc', linewidth=1)
    for k in range(1, N + 1):
        ax.plot(x[:, k], y[:, k], linewidth=1.5, color=SEGMENT_COLORS[(k - 1) % len(SEGMENT_COLORS)],
                label=f"mass {k}")
    ax.plot([0], [0], 'o', color='black', markersize=4)
    ax.set_xlim(-axis_limit, axis_limit)
    ax.set_ylim(-axis_limit, axis_limit)
    ax.set_xlabel("x (m)")
    ax.set_ylabel("y (m)")
    ax.set_title("Trajectories")
    if N <= len(SEGMENT_COLORS):
        ax.legend(frameon=False, loc='upper right')
    fig.tight_layout()
    fig.savefig(outpath, dpi=200)
    plt.close(fig)
    return outpath


if __name__ == '__main__':
    # Create animation and save as video
    animate_pendulum(save_video=True, video_filename='triple_pendulum_100.mp4')
