import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from fieldclock.core.authorization import Role
from fieldclock.core.errors import (
    EntryNotFound,
    ForceNotPermitted,
    InvalidEdit,
    InvalidInput,
    NotEntryOwner,
)
from fieldclock.core.settings import ClockSettings
from fieldclock.core.timeutil import to_naive_utc, utcnow
from fieldclock.database import run_in_transaction
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services import exception_tagger
from fieldclock.services.audit import record_audit, snapshot_entry
from fieldclock.services.immutability import ensure_mutable

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("clock_in_at", "clock_out_at", "notes")
MAX_SHIFT = timedelta(hours=24)
REASON_MIN_LEN = 3
REASON_MAX_LEN = 500


@dataclass(frozen=True)
class EditResult:
    time_entry_id: str
    ok: bool = True
    has_overlap: bool = False
    requires_reapproval: bool = False


@dataclass(frozen=True)
class DisputeResult:
    time_entry_id: str
    exception_tags: list


def _load_entry(db: Session, company_id: int, time_entry_id: str) -> TimeEntry:
    entry = (
        db.query(TimeEntry)
        .filter(
            TimeEntry.time_entry_id == str(time_entry_id),
            TimeEntry.company_id == int(company_id),
        )
        .with_for_update()
        .one_or_none()
    )
    if entry is None:
        raise EntryNotFound("Time entry not found", time_entry_id=str(time_entry_id))
    return entry


def _check_force(actor_role: str, force: bool, reason: Optional[str]) -> Optional[str]:
    reason = (reason or "").strip() or None
    if not force:
        return reason

    if str(actor_role).upper() != Role.ADMIN.value:
        raise ForceNotPermitted("Only admin can force-edit approved/invoiced entries")

    if reason is None or not (REASON_MIN_LEN <= len(reason) <= REASON_MAX_LEN):
        raise InvalidInput(f"A reason of {REASON_MIN_LEN}-{REASON_MAX_LEN} characters is required with force")
    return reason


def edit_time_entry(
    company_id: int,
    actor_id: str,
    actor_role: str,
    time_entry_id: str,
    fields: Dict[str, Any],
    *,
    force: bool = False,
    reason: Optional[str] = None,
    settings: ClockSettings,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> EditResult:
    """
    Correct clock times or notes on a closed or open entry.

    Approved or invoiced entries are refused unless an admin passes force with
    a reason. A time change on an approved, not-yet-invoiced entry drops the
    approval and marks the entry for re-approval.
    """
    if db is None:
        return run_in_transaction(
            lambda session: edit_time_entry(
                company_id,
                actor_id,
                actor_role,
                time_entry_id,
                fields,
                force=force,
                reason=reason,
                settings=settings,
                now=now,
                db=session,
            )
        )

    now = now or utcnow()
    changes = {k: v for k, v in (fields or {}).items() if k in EDITABLE_FIELDS}
    unknown = set(fields or {}) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidInput(f"Fields not editable: {', '.join(sorted(unknown))}")
    if not changes:
        raise InvalidInput("No changes provided")

    reason = _check_force(actor_role, force, reason)

    entry = _load_entry(db, company_id, time_entry_id)
    ensure_mutable(entry, force=force)

    new_in = to_naive_utc(changes["clock_in_at"]) if "clock_in_at" in changes else entry.clock_in_at
    new_out = to_naive_utc(changes["clock_out_at"]) if "clock_out_at" in changes else entry.clock_out_at

    if new_in is None:
        raise InvalidEdit("clock_in_at cannot be cleared")
    if "clock_out_at" in changes and new_out is None:
        raise InvalidEdit("clock_out_at cannot be cleared")
    if new_out is not None:
        if new_out <= new_in:
            raise InvalidEdit("Clock out must be after clock in")
        if new_out - new_in > MAX_SHIFT:
            raise InvalidEdit("Shift duration cannot exceed 24 hours")

    before = snapshot_entry(entry)
    time_changed = new_in != entry.clock_in_at or new_out != entry.clock_out_at

    entry.clock_in_at = new_in
    entry.clock_out_at = new_out
    if "notes" in changes:
        entry.notes = changes["notes"]
    entry.updated_at = now

    has_overlap = False
    if time_changed:
        has_overlap = exception_tagger.tag_after_edit(db, entry, settings)
        if entry.approved and entry.invoice_id is None:
            entry.approved = False
            entry.approved_by = None
            entry.approved_at = None
            entry.requires_reapproval = True

    action = "time_entry.force_edit" if force else "time_entry.edit"
    record_audit(
        db,
        company_id=entry.company_id,
        actor_id=actor_id,
        action=action,
        target_type="time_entry",
        target_id=entry.time_entry_id,
        before=before,
        after=snapshot_entry(entry),
        reason=reason,
        now=now,
    )
    db.flush()

    logger.info(
        "editTimeEntry: Success",
        extra={
            "company_id": entry.company_id,
            "actor_id": str(actor_id),
            "time_entry_id": entry.time_entry_id,
            "force": bool(force),
            "time_changed": time_changed,
            "has_overlap": has_overlap,
        },
    )
    return EditResult(
        time_entry_id=entry.time_entry_id,
        ok=True,
        has_overlap=has_overlap,
        requires_reapproval=bool(entry.requires_reapproval),
    )


def dispute_time_entry(
    company_id: int,
    actor_id: str,
    actor_role: str,
    time_entry_id: str,
    *,
    actor_employee_id: Optional[int] = None,
    reason: Optional[str] = None,
    force: bool = False,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> DisputeResult:
    if db is None:
        return run_in_transaction(
            lambda session: dispute_time_entry(
                company_id,
                actor_id,
                actor_role,
                time_entry_id,
                actor_employee_id=actor_employee_id,
                reason=reason,
                force=force,
                now=now,
                db=session,
            )
        )

    now = now or utcnow()
    reason = _check_force(actor_role, force, reason)

    entry = _load_entry(db, company_id, time_entry_id)

    # Workers may only dispute their own entries.
    if str(actor_role).upper() == Role.EMPLOYEE.value:
        if actor_employee_id is None or int(actor_employee_id) != entry.employee_id:
            raise NotEntryOwner("Not your time entry", time_entry_id=entry.time_entry_id)

    ensure_mutable(entry, force=force)

    before = snapshot_entry(entry)
    exception_tagger.mark_disputed(entry, now=now)

    record_audit(
        db,
        company_id=entry.company_id,
        actor_id=actor_id,
        action="time_entry.dispute",
        target_type="time_entry",
        target_id=entry.time_entry_id,
        before=before,
        after=snapshot_entry(entry),
        reason=reason,
        now=now,
    )
    db.flush()

    return DisputeResult(time_entry_id=entry.time_entry_id, exception_tags=list(entry.exception_tags))
