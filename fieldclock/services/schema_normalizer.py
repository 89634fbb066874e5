"""
One-time normalization of legacy time-entry exports.

Older clients wrote the same facts under several field names (clockIn, at,
clockInAt, ...). This module maps them onto the canonical TimeEntry columns.
Nothing else in the engine reads legacy names.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from fieldclock.core.errors import InvalidInput
from fieldclock.core.timeutil import to_naive_utc
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services.exception_tagger import ExceptionTag

logger = logging.getLogger(__name__)

# canonical column -> accepted legacy names, first match wins
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "time_entry_id": ("time_entry_id", "id", "entryId", "timeEntryId"),
    "company_id": ("company_id", "companyId", "orgId"),
    "employee_id": ("employee_id", "employeeId", "workerId", "userId"),
    "job_id": ("job_id", "jobId"),
    "clock_in_at": ("clock_in_at", "clockInAt", "clockIn", "at"),
    "clock_out_at": ("clock_out_at", "clockOutAt", "clockOut"),
    "clock_in_lat": ("clock_in_lat", "clockInLat", "lat"),
    "clock_in_lng": ("clock_in_lng", "clockInLng", "lng"),
    "clock_in_accuracy_m": ("clock_in_accuracy_m", "clockInAccuracy", "accuracy", "accuracyM"),
    "clock_in_distance_m": ("clock_in_distance_m", "clockInDistanceM", "distanceM"),
    "geo_ok_in": ("geo_ok_in", "clockInGeofenceValid", "geoOk", "geoOkIn"),
    "clock_out_lat": ("clock_out_lat", "clockOutLat"),
    "clock_out_lng": ("clock_out_lng", "clockOutLng"),
    "clock_out_accuracy_m": ("clock_out_accuracy_m", "clockOutAccuracy"),
    "clock_out_distance_m": ("clock_out_distance_m", "clockOutDistanceM"),
    "geo_ok_out": ("geo_ok_out", "clockOutGeofenceValid", "geoOkOut"),
    "radius_used_m": ("radius_used_m", "radiusUsedM", "radiusM", "radius"),
    "approved": ("approved",),
    "approved_by": ("approved_by", "approvedBy"),
    "approved_at": ("approved_at", "approvedAt"),
    "invoice_id": ("invoice_id", "invoiceId"),
    "invoiced_at": ("invoiced_at", "invoicedAt"),
    "exception_tags": ("exception_tags", "exceptionTags", "exception", "exceptions"),
    "geofence_violation_distance_m": ("geofence_violation_distance_m", "geofenceViolationDistance"),
    "clock_in_event_id": ("clock_in_event_id", "clientEventId", "clockInEventId", "eventId"),
    "clock_out_event_id": ("clock_out_event_id", "clockOutEventId"),
    "device_id": ("device_id", "deviceId"),
    "clock_out_device_id": ("clock_out_device_id", "clockOutDeviceId"),
    "notes": ("notes", "note"),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
}

LEGACY_TAGS = {
    "geofence_out": ExceptionTag.OUTSIDE_GEOFENCE.value,
    "outside_geofence": ExceptionTag.OUTSIDE_GEOFENCE.value,
    "auto_clockout": ExceptionTag.AUTO_CLOSED.value,
    "auto_closed": ExceptionTag.AUTO_CLOSED.value,
    "exceeds_12h": ExceptionTag.OVERLONG_SHIFT.value,
    "overlong_shift": ExceptionTag.OVERLONG_SHIFT.value,
    "overlap": ExceptionTag.OVERLAPPING.value,
    "disputed": ExceptionTag.DISPUTED.value,
}

_DATETIME_FIELDS = {"clock_in_at", "clock_out_at", "approved_at", "invoiced_at", "created_at", "updated_at"}
_INT_FIELDS = {"company_id", "employee_id", "job_id"}
_FLOAT_FIELDS = {
    "clock_in_lat",
    "clock_in_lng",
    "clock_in_accuracy_m",
    "clock_in_distance_m",
    "clock_out_lat",
    "clock_out_lng",
    "clock_out_accuracy_m",
    "clock_out_distance_m",
    "radius_used_m",
    "geofence_violation_distance_m",
}


def _first(raw: Dict[str, Any], names: Iterable[str]) -> Tuple[bool, Any]:
    for name in names:
        if name in raw:
            return True, raw[name]
    return False, None


def parse_legacy_timestamp(value: Any) -> Optional[datetime]:
    """Accept ISO strings, epoch milliseconds and {"_seconds": ...} exports."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if seconds is None:
            raise InvalidInput(f"Unrecognized timestamp: {value!r}")
        nanos = value.get("_nanoseconds", value.get("nanoseconds", 0)) or 0
        return datetime.fromtimestamp(int(seconds) + int(nanos) / 1e9, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise InvalidInput(f"Unrecognized timestamp: {value!r}") from exc
    raise InvalidInput(f"Unrecognized timestamp: {value!r}")


def normalize_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]

    tags: List[str] = []
    for tag in value:
        name = str(tag).strip()
        canonical = LEGACY_TAGS.get(name, name)
        try:
            canonical = ExceptionTag(canonical).value
        except ValueError as exc:
            raise InvalidInput(f"Unknown exception tag: {name}") from exc
        if canonical not in tags:
            tags.append(canonical)
    return tags


def normalize_legacy_time_entry(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return a dict keyed by TimeEntry column names. Unknown keys are dropped."""
    if not isinstance(raw, dict):
        raise InvalidInput("Legacy entry must be an object")

    out: Dict[str, Any] = {}
    for column, aliases in FIELD_ALIASES.items():
        found, value = _first(raw, aliases)
        if not found:
            continue

        if column in _DATETIME_FIELDS:
            value = parse_legacy_timestamp(value)
        elif column in _INT_FIELDS and value is not None:
            try:
                value = int(value)
            except (TypeError, ValueError) as exc:
                raise InvalidInput(f"{column} must be an integer id, got {value!r}") from exc
        elif column in _FLOAT_FIELDS and value is not None:
            value = float(value)
        elif column == "exception_tags":
            value = normalize_tags(value)
        elif column in {"geo_ok_in", "geo_ok_out", "approved"} and value is not None:
            value = bool(value)
        out[column] = value

    # {"geo": {"lat": .., "lng": ..}} as written by the earliest clients
    geo = raw.get("geo")
    if isinstance(geo, dict):
        out.setdefault("clock_in_lat", float(geo.get("lat", geo.get("latitude"))))
        out.setdefault("clock_in_lng", float(geo.get("lng", geo.get("longitude"))))

    for required in ("company_id", "employee_id", "job_id", "clock_in_at"):
        if out.get(required) is None:
            raise InvalidInput(f"Legacy entry is missing {required}")

    out.setdefault("exception_tags", [])
    out.setdefault("approved", bool(out.get("approved_by")))
    return out


def build_time_entry(normalized: Dict[str, Any], *, default_radius_m: float) -> TimeEntry:
    """Fill columns that legacy exports never carried, then build the ORM row."""
    values = dict(normalized)
    values["time_entry_id"] = str(values.get("time_entry_id") or uuid4())

    defaults = {
        "clock_in_lat": 0.0,
        "clock_in_lng": 0.0,
        "clock_in_distance_m": 0.0,
        "geo_ok_in": True,
        "radius_used_m": float(default_radius_m),
        "clock_in_event_id": f"legacy:{values['time_entry_id']}",
        "created_at": values["clock_in_at"],
    }
    for column, default in defaults.items():
        if values.get(column) is None:
            values[column] = default
    if values.get("updated_at") is None:
        values["updated_at"] = values["created_at"]

    values["approved"] = bool(values.get("approved"))
    values["requires_reapproval"] = False
    return TimeEntry(**values)


def import_legacy_time_entries(
    db: Session,
    records: Iterable[Dict[str, Any]],
    *,
    default_radius_m: float,
) -> Dict[str, int]:
    """
    Insert normalized legacy rows. Rows whose id already exists are skipped.
    Caller owns the transaction.
    """
    imported = 0
    skipped = 0
    for raw in records:
        entry = build_time_entry(normalize_legacy_time_entry(raw), default_radius_m=default_radius_m)
        if db.get(TimeEntry, entry.time_entry_id) is not None:
            skipped += 1
            continue
        db.add(entry)
        db.flush()
        imported += 1

    logger.info("Legacy import finished", extra={"imported": imported, "skipped": skipped})
    return {"imported": imported, "skipped": skipped}
