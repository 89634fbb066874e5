import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from fieldclock.core.errors import (
    AlreadyApproved,
    ClockError,
    CrossTenantAccess,
    EntryNotFound,
    EntryStillOpen,
    InvalidInput,
)
from fieldclock.core.settings import ClockSettings
from fieldclock.core.timeutil import utcnow
from fieldclock.database import run_in_transaction
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services.audit import record_audit, snapshot_entry

logger = logging.getLogger(__name__)


@dataclass
class BulkApprovalResult:
    approved_count: int = 0
    failed_count: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)


def _approve_one(
    db: Session,
    company_id: int,
    actor_id: str,
    time_entry_id: str,
    now: datetime,
) -> None:
    # Load without the tenant filter so a foreign id is reported, not hidden.
    entry = (
        db.query(TimeEntry)
        .filter(TimeEntry.time_entry_id == str(time_entry_id))
        .with_for_update()
        .one_or_none()
    )
    if entry is None:
        raise EntryNotFound("Time entry not found")

    if entry.company_id != company_id:
        logger.warning(
            "bulkApprove: cross-tenant entry blocked",
            extra={
                "company_id": company_id,
                "actor_id": actor_id,
                "time_entry_id": entry.time_entry_id,
            },
        )
        raise CrossTenantAccess("Time entry belongs to another company")

    if entry.approved:
        raise AlreadyApproved("Time entry already approved")

    if entry.is_open:
        raise EntryStillOpen("Time entry is still clocked in")

    before = snapshot_entry(entry)
    entry.approved = True
    entry.approved_by = actor_id
    entry.approved_at = now
    entry.requires_reapproval = False
    entry.updated_at = now

    record_audit(
        db,
        company_id=company_id,
        actor_id=actor_id,
        action="time_entry.approve",
        target_type="time_entry",
        target_id=entry.time_entry_id,
        before=before,
        after=snapshot_entry(entry),
        now=now,
    )


def _approve_chunk(
    db: Session,
    company_id: int,
    actor_id: str,
    entry_ids: Sequence[str],
    now: datetime,
) -> Tuple[int, List[Dict[str, str]]]:
    approved = 0
    errors: List[Dict[str, str]] = []
    for time_entry_id in entry_ids:
        try:
            _approve_one(db, company_id, actor_id, time_entry_id, now)
        except ClockError as exc:
            errors.append({"time_entry_id": str(time_entry_id), "code": exc.code, "message": exc.message})
            continue
        approved += 1
    db.flush()
    return approved, errors


def bulk_approve(
    company_id: int,
    actor_id: str,
    entry_ids: Sequence[str],
    *,
    settings: ClockSettings,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> BulkApprovalResult:
    """
    Approve many closed entries at once.

    Failures are reported per entry and never block the rest of the batch.
    If db is None each chunk commits in its own transaction.
    """
    company_id = int(company_id)
    actor_id = str(actor_id)
    now = now or utcnow()

    ids = [str(x) for x in (entry_ids or [])]
    if not ids:
        raise InvalidInput("time_entry_ids must not be empty")
    if len(ids) > settings.bulk_approve_max:
        raise InvalidInput(f"Cannot approve more than {settings.bulk_approve_max} entries at once")

    logger.info(
        "bulkApprove: Request received",
        extra={"company_id": company_id, "actor_id": actor_id, "count": len(ids)},
    )

    chunk_size = max(1, int(settings.bulk_approve_chunk))
    result = BulkApprovalResult()

    for start in range(0, len(ids), chunk_size):
        chunk = ids[start:start + chunk_size]
        if db is None:
            approved, errors = run_in_transaction(
                lambda session: _approve_chunk(session, company_id, actor_id, chunk, now)
            )
        else:
            approved, errors = _approve_chunk(db, company_id, actor_id, chunk, now)

        result.approved_count += approved
        result.failed_count += len(errors)
        result.errors.extend(errors)

        logger.info(
            "bulkApprove: batch committed",
            extra={
                "company_id": company_id,
                "batch_start": start,
                "approved": approved,
                "failed": len(errors),
            },
        )

    logger.info(
        "bulkApprove: Success",
        extra={
            "company_id": company_id,
            "actor_id": actor_id,
            "approved_count": result.approved_count,
            "failed_count": result.failed_count,
        },
    )
    return result
