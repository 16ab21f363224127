"""
Simulation Requests
Parse, validate and answer /simulate style payloads
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

import numpy as np

from equations import ChainParameters
from function_generator import IntegrationDivergedError, SingularSystemError
from simulator import Trajectory, solve

MAX_SEGMENTS = 150
MAX_POINTS = 100_000
MAX_T_MAX = 3600.0
DEFAULT_T_MAX = 60.0
DEFAULT_N_POINTS = 8000


class InvalidParameterError(ValueError):
    """The request cannot describe a physical chain or a valid time grid."""


@dataclass(frozen=True)
class SimulationRequest:
    n: int
    masses: Tuple[float, ...]
    lengths: Tuple[float, ...]
    initial_angles: Tuple[float, ...]  # radians
    initial_angular_velocities: Tuple[float, ...]
    t_max: float
    n_points: int

    @property
    def params(self) -> ChainParameters:
        return ChainParameters(masses=np.array(self.masses), lengths=np.array(self.lengths))


def parse_csv_floats(text: str) -> List[float]:
    """Parse '1, 2.5,3' into floats, skipping blank or unparsable entries."""
    values = []
    for token in text.split(","):
        try:
            values.append(float(token.strip()))
        except ValueError:
            continue
    return values


def _integer(value: Any, key: str) -> int:
    """Convert an integral number (1, 1.0, "3") to int; reject 2.9, inf and nan."""
    try:
        number = float(value)
        integer = int(number)
    except (TypeError, ValueError, OverflowError) as err:
        raise InvalidParameterError(f"'{key}' must be an integer, got {value!r}") from err
    if number != integer:
        raise InvalidParameterError(f"'{key}' must be an integer, got {value!r}")
    return integer


def _float_list(payload: Mapping[str, Any], key: str) -> List[float]:
    raw = payload[key]
    if isinstance(raw, str):
        return parse_csv_floats(raw)
    try:
        return [float(v) for v in raw]
    except (TypeError, ValueError) as err:
        raise InvalidParameterError(f"'{key}' must be a list of numbers or a comma-separated string") from err


def validate_request(request: SimulationRequest) -> None:
    n = request.n
    if n < 1 or n > MAX_SEGMENTS:
        raise InvalidParameterError(f"n must be between 1 and {MAX_SEGMENTS}, got {n}")

    counts = {
        "M": len(request.masses),
        "L": len(request.lengths),
        "A": len(request.initial_angles),
        "V": len(request.initial_angular_velocities),
    }
    if any(count != n for count in counts.values()):
        got = ", ".join(f"{key}:{count}" for key, count in counts.items())
        raise InvalidParameterError(f"Input length mismatch. Expected {n}, got {got}")

    for name, values in (("masses", request.masses), ("lengths", request.lengths)):
        if not all(np.isfinite(v) and v > 0 for v in values):
            raise InvalidParameterError(f"All {name} must be positive finite numbers")
    for name, values in (("initial_angles", request.initial_angles),
                         ("initial_angular_velocities", request.initial_angular_velocities)):
        if not all(np.isfinite(v) for v in values):
            raise InvalidParameterError(f"All {name} must be finite")

    if not (np.isfinite(request.t_max) and 0 < request.t_max <= MAX_T_MAX):
        raise InvalidParameterError(f"t_max must be positive and at most {MAX_T_MAX:g}, got {request.t_max}")
    if request.n_points < 2 or request.n_points > MAX_POINTS:
        raise InvalidParameterError(f"n_points must be between 2 and {MAX_POINTS}, got {request.n_points}")


def parse_request(payload: Mapping[str, Any]) -> SimulationRequest:
    """
    Build a validated SimulationRequest from a JSON-like mapping.

    Expected keys: n, masses, lengths, initial_angles (degrees), t_max,
    n_points; initial_angular_velocities (rad/s) is optional.
    """
    missing = [key for key in ("n", "masses", "lengths", "initial_angles") if key not in payload]
    if missing:
        raise InvalidParameterError(f"Missing field(s): {', '.join(missing)}")

    n = _integer(payload["n"], "n")
    if n < 1 or n > MAX_SEGMENTS:
        raise InvalidParameterError(f"n must be between 1 and {MAX_SEGMENTS}, got {n}")
    n_points = _integer(payload.get("n_points", DEFAULT_N_POINTS), "n_points")
    try:
        t_max = float(payload.get("t_max", DEFAULT_T_MAX))
    except (TypeError, ValueError) as err:
        raise InvalidParameterError(f"'t_max' must be a number: {err}") from err

    angles_deg = _float_list(payload, "initial_angles")
    if payload.get("initial_angular_velocities") is None:
        velocities = [0.0] * n
    else:
        velocities = _float_list(payload, "initial_angular_velocities")

    request = SimulationRequest(
        n=n,
        masses=tuple(_float_list(payload, "masses")),
        lengths=tuple(_float_list(payload, "lengths")),
        initial_angles=tuple(float(a) for a in np.radians(angles_deg)),
        initial_angular_velocities=tuple(velocities),
        t_max=t_max,
        n_points=n_points,
    )
    validate_request(request)
    return request


def default_request(n: int = 2) -> Dict[str, Any]:
    """Payload with unit masses and lengths, 90 deg / 45 deg / 0 deg initial angles."""
    angles = [90.0 if i == 0 else 45.0 if i == 1 else 0.0 for i in range(n)]
    return {
        "n": n,
        "masses": ",".join(["1.0"] * n),
        "lengths": ",".join(["1.0"] * n),
        "initial_angles": ",".join(str(a) for a in angles),
        "t_max": DEFAULT_T_MAX,
        "n_points": DEFAULT_N_POINTS,
    }


def flatten_positions(x: np.ndarray, y: np.ndarray) -> List[List[float]]:
    """Turn (P, N+1) node coordinates into rows of [x1, y1, x2, y2, ...], pivot dropped."""
    P, nodes = x.shape
    flat = np.empty((P, 2 * (nodes - 1)))
    flat[:, 0::2] = x[:, 1:]
    flat[:, 1::2] = y[:, 1:]
    return flat.tolist()


def _failure(message: str) -> Dict[str, Any]:
    return {
        "success": False,
        "animation_data": {"positions": [], "n": 0, "limit": 0.0},
        "message": message,
    }


def simulate_request(payload: Mapping[str, Any]) -> Tuple[SimulationRequest, Trajectory]:
    """Parse and run one request; raises InvalidParameterError or SingularSystemError."""
    request = parse_request(payload)
    trajectory = solve(
        request.params,
        request.initial_angles,
        request.initial_angular_velocities,
        t_max=request.t_max,
        n_points=request.n_points,
    )
    return request, trajectory


def handle_simulate(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Answer one simulation request with animation data or an error message."""
    try:
        request, trajectory = simulate_request(payload)
    except InvalidParameterError as err:
        return _failure(f"Invalid parameters: {err}")
    except IntegrationDivergedError as err:
        return _failure(f"Integration diverged: {err}")
    except SingularSystemError as err:
        return _failure(f"Singular system: {err}")

    x, y = trajectory.positions(request.lengths)
    return {
        "success": True,
        "animation_data": {
            "positions": flatten_positions(x, y),
            "n": request.n,
            "limit": float(sum(request.lengths)) + 0.5,
        },
    }
