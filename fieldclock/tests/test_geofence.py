import math

import pytest

from fieldclock.core.errors import InvalidInput
from fieldclock.services.geofence import (
    Position,
    evaluate_geofence,
    haversine_distance_m,
    validate_position,
)

# One degree of latitude on a 6,371 km sphere.
METERS_PER_DEGREE = 6371000.0 * math.pi / 180.0


def test_haversine_zero_for_same_point():
    assert haversine_distance_m(45.0, -122.0, 45.0, -122.0) == 0.0


def test_haversine_one_degree_latitude():
    assert haversine_distance_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(METERS_PER_DEGREE, rel=1e-9)


def test_inside_radius_plus_accuracy_is_within_fence():
    # ~105m away, radius 100, accuracy 10 -> effective 110
    pos = Position(lat=105.0 / METERS_PER_DEGREE, lng=0.0, accuracy_m=10.0)
    result = evaluate_geofence(pos, 0.0, 0.0, 100.0)

    assert result.within_fence is True
    assert result.distance_m == pytest.approx(105.0, abs=0.01)
    assert result.effective_radius_m == 110.0


def test_outside_effective_radius():
    pos = Position(lat=500.0 / METERS_PER_DEGREE, lng=0.0, accuracy_m=10.0)
    result = evaluate_geofence(pos, 0.0, 0.0, 100.0)

    assert result.within_fence is False
    assert result.distance_m == pytest.approx(500.0, abs=0.01)


def test_boundary_is_inclusive():
    pos = Position(lat=100.0 / METERS_PER_DEGREE, lng=0.0, accuracy_m=None)
    distance = haversine_distance_m(pos.lat, pos.lng, 0.0, 0.0)

    result = evaluate_geofence(pos, 0.0, 0.0, distance)

    assert result.within_fence is True
    assert result.effective_radius_m == distance


def test_missing_accuracy_counts_as_zero():
    pos = Position(lat=105.0 / METERS_PER_DEGREE, lng=0.0, accuracy_m=None)
    result = evaluate_geofence(pos, 0.0, 0.0, 100.0)

    assert result.within_fence is False
    assert result.effective_radius_m == 100.0


@pytest.mark.parametrize(
    "lat,lng,accuracy",
    [
        (91.0, 0.0, 10.0),
        (-90.5, 0.0, 10.0),
        (0.0, 180.5, 10.0),
        (float("nan"), 0.0, 10.0),
        (0.0, 0.0, -1.0),
        (0.0, 0.0, 2500.0),
    ],
)
def test_validate_position_rejects_bad_input(lat, lng, accuracy):
    with pytest.raises(InvalidInput):
        validate_position(lat, lng, accuracy)


def test_validate_position_accepts_extremes():
    pos = validate_position(-90.0, 180.0, 0.0)
    assert pos == Position(lat=-90.0, lng=180.0, accuracy_m=0.0)
