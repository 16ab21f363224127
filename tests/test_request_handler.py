"""Tests for request parsing, validation and response shaping."""

import numpy as np
import pytest

import request_handler
from function_generator import IntegrationDivergedError, SingularSystemError
from request_handler import (
    MAX_SEGMENTS,
    MAX_T_MAX,
    InvalidParameterError,
    default_request,
    flatten_positions,
    handle_simulate,
    parse_csv_floats,
    parse_request,
)


def make_payload(**overrides):
    payload = {
        "n": 2,
        "masses": "1, 1",
        "lengths": "1,1",
        "initial_angles": "90,90",
        "t_max": 1.0,
        "n_points": 100,
    }
    payload.update(overrides)
    return payload


def test_parse_csv_floats():
    assert parse_csv_floats("1, 2.5,3") == [1.0, 2.5, 3.0]
    assert parse_csv_floats(" -1e-3 ,, abc, 4") == [-0.001, 4.0]
    assert parse_csv_floats("") == []


def test_parse_request_converts_degrees():
    request = parse_request(make_payload(initial_angles="90, -45"))
    assert request.n == 2
    np.testing.assert_allclose(request.initial_angles, [np.pi / 2, -np.pi / 4])
    assert request.initial_angular_velocities == (0.0, 0.0)
    assert request.t_max == 1.0
    assert request.n_points == 100
    assert request.params.n == 2


def test_parse_request_accepts_lists_and_velocities():
    request = parse_request(make_payload(
        masses=[1, 2],
        lengths=[0.5, 1.5],
        initial_angles=[0, 180],
        initial_angular_velocities="0.5, -1",
    ))
    assert request.masses == (1.0, 2.0)
    assert request.lengths == (0.5, 1.5)
    np.testing.assert_allclose(request.initial_angles, [0.0, np.pi])
    assert request.initial_angular_velocities == (0.5, -1.0)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"masses": "1"}, "Input length mismatch. Expected 2, got M:1, L:2, A:2, V:2"),
        ({"masses": "1, abc"}, "Input length mismatch"),
        ({"initial_angular_velocities": "0"}, "Input length mismatch"),
        ({"n": 0, "masses": "", "lengths": "", "initial_angles": ""}, "n must be between"),
        ({"n": MAX_SEGMENTS + 1}, "n must be between"),
        ({"masses": "1, -1"}, "masses must be positive"),
        ({"lengths": "1, 0"}, "lengths must be positive"),
        ({"masses": "1, inf"}, "masses must be positive"),
        ({"initial_angles": "90, nan"}, "initial_angles must be finite"),
        ({"t_max": 0}, "t_max must be positive"),
        ({"t_max": "nan"}, "t_max must be positive"),
        ({"n_points": 1}, "n_points must be between"),
        ({"n_points": 10**7}, "n_points must be between"),
        ({"t_max": MAX_T_MAX + 1}, "at most 3600"),
        ({"t_max": "long"}, "'t_max' must be a number"),
        ({"n": "two"}, "'n' must be an integer"),
        ({"n": 2.9}, "'n' must be an integer"),
        ({"n": 1e300}, "n must be between"),
        ({"n": 10**12}, "n must be between"),
        ({"n": float("inf")}, "'n' must be an integer"),
        ({"n": float("nan")}, "'n' must be an integer"),
        ({"n_points": 100.5}, "'n_points' must be an integer"),
        ({"n_points": float("inf")}, "'n_points' must be an integer"),
        ({"masses": 3}, "'masses' must be a list"),
        ({"lengths": [1, "x"]}, "'lengths' must be a list"),
    ],
)
def test_parse_request_rejects_invalid_input(overrides, message):
    with pytest.raises(InvalidParameterError, match=message):
        parse_request(make_payload(**overrides))


def test_parse_request_reports_missing_fields():
    payload = make_payload()
    del payload["lengths"]
    del payload["initial_angles"]
    with pytest.raises(InvalidParameterError, match="Missing field\\(s\\): lengths, initial_angles"):
        parse_request(payload)


def test_invalid_parameter_error_is_value_error():
    assert issubclass(InvalidParameterError, ValueError)


def test_default_request():
    payload = default_request(4)
    assert payload["initial_angles"] == "90.0,45.0,0.0,0.0"
    assert payload["masses"] == "1.0,1.0,1.0,1.0"
    assert payload["t_max"] == 60.0
    assert payload["n_points"] == 8000
    request = parse_request(payload)
    assert request.n == 4


def test_flatten_positions():
    x = np.array([[0.0, 1.0, 2.0], [0.0, 3.0, 4.0]])
    y = np.array([[0.0, -1.0, -2.0], [0.0, -3.0, -4.0]])
    assert flatten_positions(x, y) == [[1.0, -1.0, 2.0, -2.0], [3.0, -3.0, 4.0, -4.0]]


def test_handle_simulate_success():
    response = handle_simulate(make_payload())

    assert response["success"] is True
    assert "message" not in response
    data = response["animation_data"]
    assert data["n"] == 2
    assert data["limit"] == pytest.approx(2.5)
    assert len(data["positions"]) == 100
    assert all(len(row) == 4 for row in data["positions"])
    # Both rods start horizontal to the right of the pivot
    np.testing.assert_allclose(data["positions"][0], [1.0, 0.0, 2.0, 0.0], atol=1e-12)


def test_handle_simulate_invalid_request():
    response = handle_simulate(make_payload(lengths="1"))

    assert response["success"] is False
    assert response["message"].startswith("Invalid parameters: Input length mismatch")
    assert response["animation_data"] == {"positions": [], "n": 0, "limit": 0.0}


def test_handle_simulate_singular_system(monkeypatch):
    def singular(*args, **kwargs):
        raise SingularSystemError("Mass matrix is singular")

    monkeypatch.setattr(request_handler, "solve", singular)
    response = handle_simulate(make_payload())

    assert response["success"] is False
    assert response["message"] == "Singular system: Mass matrix is singular"


def test_parse_request_accepts_integral_floats():
    request = parse_request(make_payload(n=2.0, n_points="50"))
    assert request.n == 2
    assert request.n_points == 50


@pytest.mark.parametrize("n", [1e300, float("inf"), 2.9, 10**12, -(10**12)])
def test_handle_simulate_rejects_unusable_segment_counts(n):
    """Huge, infinite or fractional n is reported, never raised or allocated."""
    response = handle_simulate(make_payload(n=n))

    assert response["success"] is False
    assert response["message"].startswith("Invalid parameters: ")
    assert response["animation_data"] == {"positions": [], "n": 0, "limit": 0.0}


def test_handle_simulate_diverged_state(monkeypatch):
    def diverged(*args, **kwargs):
        raise IntegrationDivergedError("state diverged to non-finite values")

    monkeypatch.setattr(request_handler, "solve", diverged)
    response = handle_simulate(make_payload())

    assert response["success"] is False
    assert response["message"] == "Integration diverged: state diverged to non-finite values"
