"""
Geofence validation.

Great-circle (haversine) distance between a reported position and a job
anchor. The effective radius adds the full reported GPS accuracy to the job
tolerance, so a poor fix is forgiven up to its own error margin.
"""
import math
from dataclasses import dataclass
from typing import Optional

from fieldclock.core.errors import InvalidInput

EARTH_RADIUS_M = 6371000.0
MAX_REPORTED_ACCURACY_M = 2000.0


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float
    accuracy_m: Optional[float] = None


@dataclass(frozen=True)
class GeofenceResult:
    within_fence: bool
    distance_m: float
    effective_radius_m: float


def haversine_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def validate_position(lat: float, lng: float, accuracy_m: Optional[float]) -> Position:
    if lat is None or lng is None or math.isnan(lat) or math.isnan(lng):
        raise InvalidInput("Latitude and longitude are required")
    if lat < -90 or lat > 90:
        raise InvalidInput("Invalid latitude: must be between -90 and 90")
    if lng < -180 or lng > 180:
        raise InvalidInput("Invalid longitude: must be between -180 and 180")
    if accuracy_m is not None:
        if math.isnan(accuracy_m) or accuracy_m < 0 or accuracy_m > MAX_REPORTED_ACCURACY_M:
            raise InvalidInput("Invalid accuracy: must be between 0 and 2000 meters")
    return Position(lat=float(lat), lng=float(lng), accuracy_m=None if accuracy_m is None else float(accuracy_m))


def effective_radius_m(radius_m: float, accuracy_m: Optional[float]) -> float:
    return float(radius_m) + float(accuracy_m or 0.0)


def evaluate_geofence(position: Position, anchor_lat: float, anchor_lng: float, radius_m: float) -> GeofenceResult:
    distance = haversine_distance_m(position.lat, position.lng, anchor_lat, anchor_lng)
    allowed = effective_radius_m(radius_m, position.accuracy_m)
    return GeofenceResult(
        within_fence=distance <= allowed,
        distance_m=distance,
        effective_radius_m=allowed,
    )
