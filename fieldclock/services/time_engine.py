import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.orm import Session

from fieldclock.core.errors import (
    AlreadyClockedIn,
    EntryNotFound,
    JobNotFound,
    NoAssignment,
    NotClockedIn,
    NotEntryOwner,
    OutsideGeofence,
    PoorGpsAccuracy,
)
from fieldclock.core.settings import ClockSettings
from fieldclock.core.timeutil import utcnow
from fieldclock.database import run_in_transaction
from fieldclock.models.assignment import Assignment
from fieldclock.models.job import Job
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services import exception_tagger, idempotency
from fieldclock.services.geofence import Position, evaluate_geofence, validate_position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClockInResult:
    time_entry_id: str
    replayed: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {"time_entry_id": self.time_entry_id}


@dataclass(frozen=True)
class ClockOutResult:
    time_entry_id: str
    ok: bool = True
    warning: Optional[str] = None
    replayed: bool = False

    def to_record(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("replayed")
        return data


def _get_active_entry(
    db: Session,
    company_id: int,
    employee_id: int,
) -> Optional[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.company_id == company_id,
            TimeEntry.employee_id == employee_id,
            TimeEntry.clock_out_at.is_(None),
        )
        .first()
    )


def _get_job(db: Session, company_id: int, job_id: int) -> Optional[Job]:
    return (
        db.query(Job)
        .filter(
            Job.id == int(job_id),
            Job.company_id == int(company_id),
        )
        .first()
    )


def _has_active_assignment(db: Session, company_id: int, employee_id: int, job_id: int, on_date: date) -> bool:
    row = (
        db.query(Assignment.id)
        .filter(
            Assignment.company_id == int(company_id),
            Assignment.employee_id == int(employee_id),
            Assignment.job_id == int(job_id),
            Assignment.is_active.is_(True),
            or_(Assignment.start_date.is_(None), Assignment.start_date <= on_date),
            or_(Assignment.end_date.is_(None), Assignment.end_date >= on_date),
        )
        .first()
    )
    return row is not None


def get_active_entry(company_id: int, employee_id: int, *, db: Session) -> Optional[TimeEntry]:
    return _get_active_entry(db, int(company_id), int(employee_id))


def clock_in(
    company_id: int,
    employee_id: int,
    job_id: int,
    lat: float,
    lng: float,
    accuracy_m: Optional[float],
    client_event_id: str,
    device_id: Optional[str] = None,
    *,
    settings: ClockSettings,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> ClockInResult:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function runs in its own transaction, retried on write conflicts.
    """
    if db is None:
        return run_in_transaction(
            lambda session: clock_in(
                company_id,
                employee_id,
                job_id,
                lat,
                lng,
                accuracy_m,
                client_event_id,
                device_id,
                settings=settings,
                now=now,
                db=session,
            )
        )

    company_id = int(company_id)
    employee_id = int(employee_id)
    job_id = int(job_id)
    now = now or utcnow()

    logger.info(
        "clockIn: Request received",
        extra={
            "company_id": company_id,
            "employee_id": employee_id,
            "job_id": job_id,
            "client_event_id": client_event_id,
            "device_id": device_id or "unknown",
        },
    )

    position = validate_position(lat, lng, accuracy_m)
    idempotency.validate_client_event_id(client_event_id, now, settings.client_event_id_ttl_hours)

    key = idempotency.build_event_key(company_id, employee_id, job_id, client_event_id, idempotency.OP_CLOCK_IN)
    prior = idempotency.resolve(db, key, now)
    if prior is not None:
        logger.info(
            "clockIn: idempotent replay",
            extra={
                "company_id": company_id,
                "employee_id": employee_id,
                "time_entry_id": prior.get("time_entry_id"),
                "client_event_id": client_event_id,
            },
        )
        return ClockInResult(time_entry_id=prior["time_entry_id"], replayed=True)

    job = _get_job(db, company_id, job_id)
    if job is None or not job.is_active:
        raise JobNotFound("Job not found", job_id=job_id)

    if not _has_active_assignment(db, company_id, employee_id, job_id, now.date()):
        raise NoAssignment("Not assigned to this job", job_id=job_id)

    if position.accuracy_m is not None and position.accuracy_m > settings.gps_max_accuracy_m:
        raise PoorGpsAccuracy(
            f"GPS accuracy too low. Please wait for better signal (current: {position.accuracy_m:.0f}m)",
            accuracy_m=position.accuracy_m,
        )

    fence = evaluate_geofence(position, job.latitude, job.longitude, job.radius_m)

    logger.info(
        "clockIn: Geofence check",
        extra={
            "company_id": company_id,
            "employee_id": employee_id,
            "job_id": job_id,
            "distance_m": round(fence.distance_m, 1),
            "radius_m": job.radius_m,
            "accuracy_m": position.accuracy_m,
            "effective_radius_m": round(fence.effective_radius_m, 1),
            "decision": "ALLOW" if fence.within_fence else ("DENY" if settings.geofence_enforced else "ALLOW (geofence disabled)"),
            "client_event_id": client_event_id,
        },
    )

    if not fence.within_fence and settings.geofence_enforced:
        raise OutsideGeofence(distance_m=fence.distance_m, effective_radius_m=fence.effective_radius_m)

    if _get_active_entry(db, company_id, employee_id) is not None:
        raise AlreadyClockedIn("Already clocked in to a job")

    entry = TimeEntry(
        time_entry_id=str(uuid4()),
        company_id=company_id,
        employee_id=employee_id,
        job_id=job_id,
        clock_in_at=now,
        clock_out_at=None,
        clock_in_lat=position.lat,
        clock_in_lng=position.lng,
        clock_in_accuracy_m=position.accuracy_m,
        clock_in_distance_m=fence.distance_m,
        geo_ok_in=fence.within_fence,
        radius_used_m=job.radius_m,
        approved=False,
        requires_reapproval=False,
        exception_tags=[],
        clock_in_event_id=client_event_id,
        device_id=device_id,
        created_at=now,
        updated_at=now,
    )
    # Only reachable with the kill switch off.
    exception_tagger.tag_geofence(entry)

    result = ClockInResult(time_entry_id=entry.time_entry_id)

    db.add(entry)
    idempotency.record(
        db,
        key,
        company_id=company_id,
        employee_id=employee_id,
        operation=idempotency.OP_CLOCK_IN,
        client_event_id=client_event_id,
        device_id=device_id,
        time_entry_id=entry.time_entry_id,
        result=result.to_record(),
        now=now,
        ttl_hours=settings.idempotency_ttl_hours,
    )
    db.flush()

    logger.info(
        "clockIn: Success",
        extra={
            "company_id": company_id,
            "employee_id": employee_id,
            "job_id": job_id,
            "time_entry_id": entry.time_entry_id,
            "distance_m": round(fence.distance_m, 1),
            "client_event_id": client_event_id,
        },
    )
    return result


def clock_out(
    company_id: int,
    employee_id: int,
    time_entry_id: str,
    lat: float,
    lng: float,
    accuracy_m: Optional[float],
    client_event_id: str,
    device_id: Optional[str] = None,
    *,
    settings: ClockSettings,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> ClockOutResult:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function runs in its own transaction, retried on write conflicts.
    """
    if db is None:
        return run_in_transaction(
            lambda session: clock_out(
                company_id,
                employee_id,
                time_entry_id,
                lat,
                lng,
                accuracy_m,
                client_event_id,
                device_id,
                settings=settings,
                now=now,
                db=session,
            )
        )

    company_id = int(company_id)
    employee_id = int(employee_id)
    now = now or utcnow()

    logger.info(
        "clockOut: Request received",
        extra={
            "company_id": company_id,
            "employee_id": employee_id,
            "time_entry_id": time_entry_id,
            "client_event_id": client_event_id,
            "device_id": device_id or "unknown",
        },
    )

    position = validate_position(lat, lng, accuracy_m)
    idempotency.validate_client_event_id(client_event_id, now, settings.client_event_id_ttl_hours)

    entry = (
        db.query(TimeEntry)
        .filter(
            TimeEntry.time_entry_id == str(time_entry_id),
            TimeEntry.company_id == company_id,
        )
        .with_for_update()
        .one_or_none()
    )
    if entry is None:
        raise EntryNotFound("Time entry not found", time_entry_id=str(time_entry_id))

    if entry.employee_id != employee_id:
        raise NotEntryOwner("Not your time entry", time_entry_id=entry.time_entry_id)

    key = idempotency.build_event_key(company_id, employee_id, entry.job_id, client_event_id, idempotency.OP_CLOCK_OUT)
    prior = idempotency.resolve(db, key, now)
    if prior is not None:
        logger.info(
            "clockOut: idempotent replay",
            extra={
                "company_id": company_id,
                "employee_id": employee_id,
                "time_entry_id": entry.time_entry_id,
                "client_event_id": client_event_id,
            },
        )
        return ClockOutResult(
            time_entry_id=prior["time_entry_id"],
            ok=bool(prior.get("ok", True)),
            warning=prior.get("warning"),
            replayed=True,
        )

    if not entry.is_open:
        raise NotClockedIn("Time entry is not clocked in", time_entry_id=entry.time_entry_id)

    if position.accuracy_m is not None and position.accuracy_m > settings.gps_max_accuracy_m:
        raise PoorGpsAccuracy(
            f"GPS accuracy too low. Please wait for better signal (current: {position.accuracy_m:.0f}m)",
            accuracy_m=position.accuracy_m,
        )

    job = _get_job(db, company_id, entry.job_id)
    if job is None:
        raise JobNotFound("Job not found", job_id=entry.job_id)

    fence = evaluate_geofence(position, job.latitude, job.longitude, job.radius_m)

    logger.info(
        "clockOut: Geofence check",
        extra={
            "company_id": company_id,
            "employee_id": employee_id,
            "time_entry_id": entry.time_entry_id,
            "job_id": entry.job_id,
            "distance_m": round(fence.distance_m, 1),
            "radius_m": job.radius_m,
            "accuracy_m": position.accuracy_m,
            "effective_radius_m": round(fence.effective_radius_m, 1),
            "decision": "ALLOW" if fence.within_fence else "ALLOW_WITH_WARNING",
            "client_event_id": client_event_id,
        },
    )

    entry.clock_out_at = now
    entry.clock_out_lat = position.lat
    entry.clock_out_lng = position.lng
    entry.clock_out_accuracy_m = position.accuracy_m
    entry.clock_out_distance_m = fence.distance_m
    entry.geo_ok_out = fence.within_fence
    entry.clock_out_event_id = client_event_id
    entry.clock_out_device_id = device_id
    entry.updated_at = now

    exception_tagger.tag_on_clock_out(db, entry, settings)

    warning = None
    if not fence.within_fence:
        warning = (
            f"Clocked out outside geofence ({fence.distance_m:.1f}m from job site). "
            "Entry flagged for review."
        )

    result = ClockOutResult(time_entry_id=entry.time_entry_id, ok=True, warning=warning)

    idempotency.record(
        db,
        key,
        company_id=company_id,
        employee_id=employee_id,
        operation=idempotency.OP_CLOCK_OUT,
        client_event_id=client_event_id,
        device_id=device_id,
        time_entry_id=entry.time_entry_id,
        result=result.to_record(),
        now=now,
        ttl_hours=settings.idempotency_ttl_hours,
    )
    db.flush()

    logger.info(
        "clockOut: Success",
        extra={
            "company_id": company_id,
            "employee_id": employee_id,
            "time_entry_id": entry.time_entry_id,
            "job_id": entry.job_id,
            "geo_ok_out": fence.within_fence,
            "flagged": not fence.within_fence,
            "client_event_id": client_event_id,
        },
    )
    return result
