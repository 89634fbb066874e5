"""
Auto-clockout sweep.

Closes entries left open longer than AUTO_CLOCKOUT_HOURS. The clock-out time
is set to the ceiling (clock_in_at + AUTO_CLOCKOUT_HOURS), never to the sweep
time, and location fields stay null because the worker's position is unknown.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from fieldclock.core.settings import ClockSettings
from fieldclock.core.timeutil import isoformat_or_none, utcnow
from fieldclock.database import run_in_transaction
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services import exception_tagger
from fieldclock.services.audit import SYSTEM_AUTO_CLOCKOUT_ACTOR, record_audit, snapshot_entry

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed_count: int = 0
    entries: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False


def _candidate_ids(db: Session, cutoff: datetime, limit: int, company_id: Optional[int] = None) -> List[str]:
    q = db.query(TimeEntry.time_entry_id).filter(
        TimeEntry.clock_out_at.is_(None),
        TimeEntry.clock_in_at < cutoff,
    )
    if company_id is not None:
        q = q.filter(TimeEntry.company_id == int(company_id))
    rows = (
        q.order_by(TimeEntry.clock_in_at.asc())
        .limit(int(limit))
        .all()
    )
    return [r[0] for r in rows]


def _describe(entry: TimeEntry, would_clock_out_at: datetime) -> Dict[str, Any]:
    return {
        "time_entry_id": entry.time_entry_id,
        "company_id": entry.company_id,
        "employee_id": entry.employee_id,
        "job_id": entry.job_id,
        "clock_in_at": isoformat_or_none(entry.clock_in_at),
        "would_clock_out_at": isoformat_or_none(would_clock_out_at),
    }


def _close_one(
    db: Session,
    time_entry_id: str,
    ceiling: timedelta,
    settings: ClockSettings,
    now: datetime,
) -> Optional[Dict[str, Any]]:
    entry = (
        db.query(TimeEntry)
        .filter(TimeEntry.time_entry_id == time_entry_id)
        .with_for_update()
        .one_or_none()
    )
    # Clocked out between the scan and this transaction.
    if entry is None or not entry.is_open:
        return None

    before = snapshot_entry(entry)
    open_duration = now - entry.clock_in_at
    clock_out_at = entry.clock_in_at + ceiling

    entry.clock_out_at = clock_out_at
    entry.geo_ok_out = None
    entry.auto_closed_reason = f"Open longer than {settings.auto_clockout_hours:g}h"
    entry.updated_at = now

    tags = exception_tagger.tag_auto_closed(db, entry, open_duration, settings)

    record_audit(
        db,
        company_id=entry.company_id,
        actor_id=SYSTEM_AUTO_CLOCKOUT_ACTOR,
        action="time_entry.auto_clockout",
        target_type="time_entry",
        target_id=entry.time_entry_id,
        before=before,
        after=snapshot_entry(entry),
        reason=entry.auto_closed_reason,
        now=now,
    )
    db.flush()

    info = _describe(entry, clock_out_at)
    info["clock_out_at"] = info.pop("would_clock_out_at")
    info["exception_tags"] = list(entry.exception_tags)
    info["tags_added"] = tags
    return info


def run_auto_clockout(
    *,
    settings: ClockSettings,
    now: Optional[datetime] = None,
    dry_run: bool = False,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
) -> SweepResult:
    """
    Close stale open entries, one transaction per entry.

    company_id narrows the sweep to one tenant (manual admin runs); the
    background worker sweeps every tenant. With db given, candidates are
    closed on that session and the caller commits.
    """
    now = now or utcnow()
    ceiling = timedelta(hours=float(settings.auto_clockout_hours))
    cutoff = now - ceiling
    limit = max(1, int(settings.auto_clockout_batch_size))

    if dry_run:
        def _scan(session: Session) -> List[Dict[str, Any]]:
            ids = _candidate_ids(session, cutoff, limit, company_id)
            if not ids:
                return []
            rows = (
                session.query(TimeEntry)
                .filter(TimeEntry.time_entry_id.in_(ids))
                .order_by(TimeEntry.clock_in_at.asc())
                .all()
            )
            return [_describe(e, e.clock_in_at + ceiling) for e in rows]

        entries = _scan(db) if db is not None else run_in_transaction(_scan)
        logger.info(
            "autoClockout: dry run",
            extra={"candidates": len(entries), "cutoff": cutoff.isoformat()},
        )
        return SweepResult(processed_count=len(entries), entries=entries, dry_run=True)

    ids = _candidate_ids(db, cutoff, limit, company_id) if db is not None else run_in_transaction(
        lambda session: _candidate_ids(session, cutoff, limit, company_id)
    )

    result = SweepResult(dry_run=False)
    for time_entry_id in ids:
        if db is not None:
            info = _close_one(db, time_entry_id, ceiling, settings, now)
        else:
            info = run_in_transaction(
                lambda session: _close_one(session, time_entry_id, ceiling, settings, now)
            )
        if info is None:
            logger.info("autoClockout: entry already closed; skipped", extra={"time_entry_id": time_entry_id})
            continue
        result.entries.append(info)
        result.processed_count += 1

    logger.info(
        "autoClockout: committed",
        extra={"candidates": len(ids), "processed_count": result.processed_count, "cutoff": cutoff.isoformat()},
    )
    return result
