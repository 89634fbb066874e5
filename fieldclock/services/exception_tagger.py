"""
Anomaly tagging for time entries.

Tags are additive and kept as an ordered, duplicate-free list. Only
mark_disputed() ever adds "disputed"; every other rule runs automatically on
clock-out, on the auto-clockout sweep, and after time edits.
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy import String, cast, or_
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session

from fieldclock.core.settings import ClockSettings
from fieldclock.models.time_entry import TimeEntry

logger = logging.getLogger(__name__)


class ExceptionTag(str, Enum):
    OUTSIDE_GEOFENCE = "outside-geofence"
    OVERLONG_SHIFT = "overlong-shift"
    AUTO_CLOSED = "auto-closed"
    OVERLAPPING = "overlapping"
    DISPUTED = "disputed"


def add_tags(entry: TimeEntry, tags: Iterable[ExceptionTag]) -> List[str]:
    current = list(entry.exception_tags or [])
    added = []
    for tag in tags:
        value = ExceptionTag(tag).value
        if value not in current:
            current.append(value)
            added.append(value)
    if added:
        entry.exception_tags = current
    return added


def tag_filter(tag: ExceptionTag, dialect_name: str):
    """SQL clause matching entries whose exception_tags contain tag."""
    value = ExceptionTag(tag).value
    if dialect_name == "postgresql":
        return cast(TimeEntry.exception_tags, JSONB).contains([value])
    # Stored as JSON text; tag values contain no LIKE wildcards.
    return cast(TimeEntry.exception_tags, String).like(f'%"{value}"%')


def has_overlap(db: Session, entry: TimeEntry) -> bool:
    """True if another entry of the same worker intersects [clock_in_at, clock_out_at)."""
    q = db.query(TimeEntry.time_entry_id).filter(
        TimeEntry.company_id == entry.company_id,
        TimeEntry.employee_id == entry.employee_id,
        TimeEntry.time_entry_id != entry.time_entry_id,
        or_(TimeEntry.clock_out_at.is_(None), TimeEntry.clock_out_at > entry.clock_in_at),
    )
    if entry.clock_out_at is not None:
        q = q.filter(TimeEntry.clock_in_at < entry.clock_out_at)
    return q.first() is not None


def _exceeds(duration: Optional[timedelta], ceiling_hours: float) -> bool:
    if duration is None:
        return False
    return duration > timedelta(hours=float(ceiling_hours))


def _geofence_violation_distance(entry: TimeEntry) -> Optional[float]:
    distances = []
    if entry.geo_ok_in is False and entry.clock_in_distance_m is not None:
        distances.append(float(entry.clock_in_distance_m))
    if entry.geo_ok_out is False and entry.clock_out_distance_m is not None:
        distances.append(float(entry.clock_out_distance_m))
    return max(distances) if distances else None


def tag_geofence(entry: TimeEntry) -> List[str]:
    if entry.geo_ok_in is False or entry.geo_ok_out is False:
        entry.geofence_violation_distance_m = _geofence_violation_distance(entry)
        return add_tags(entry, [ExceptionTag.OUTSIDE_GEOFENCE])
    return []


def tag_on_clock_out(db: Session, entry: TimeEntry, settings: ClockSettings) -> List[str]:
    tags: List[str] = []
    tags += tag_geofence(entry)

    if entry.clock_out_at is not None and _exceeds(entry.clock_out_at - entry.clock_in_at, settings.overlong_shift_hours):
        tags += add_tags(entry, [ExceptionTag.OVERLONG_SHIFT])

    if has_overlap(db, entry):
        tags += add_tags(entry, [ExceptionTag.OVERLAPPING])

    if tags:
        logger.info(
            "Exception tagged",
            extra={"time_entry_id": entry.time_entry_id, "company_id": entry.company_id, "tags": tags},
        )
    return tags


def tag_auto_closed(db: Session, entry: TimeEntry, open_duration: timedelta, settings: ClockSettings) -> List[str]:
    tags = add_tags(entry, [ExceptionTag.AUTO_CLOSED])

    if _exceeds(open_duration, settings.overlong_shift_hours):
        tags += add_tags(entry, [ExceptionTag.OVERLONG_SHIFT])

    if has_overlap(db, entry):
        tags += add_tags(entry, [ExceptionTag.OVERLAPPING])

    return tags


def tag_after_edit(db: Session, entry: TimeEntry, settings: ClockSettings) -> bool:
    """Re-run time-based rules after an edit. Returns True when an overlap was found."""
    if entry.clock_out_at is not None and _exceeds(entry.clock_out_at - entry.clock_in_at, settings.overlong_shift_hours):
        add_tags(entry, [ExceptionTag.OVERLONG_SHIFT])

    overlap = has_overlap(db, entry)
    if overlap:
        add_tags(entry, [ExceptionTag.OVERLAPPING])
    return overlap


def mark_disputed(entry: TimeEntry, *, now: datetime) -> List[str]:
    added = add_tags(entry, [ExceptionTag.DISPUTED])
    if added:
        entry.updated_at = now
    return added
