"""
Append-only audit log.

Records are written inside the caller's transaction so an audit row exists
if and only if the change it describes was committed.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from fieldclock.core.timeutil import isoformat_or_none, utcnow
from fieldclock.models.audit_log import AuditLogEntry
from fieldclock.models.time_entry import TimeEntry

logger = logging.getLogger(__name__)

SYSTEM_AUTO_CLOCKOUT_ACTOR = "system:auto-clockout"


def snapshot_entry(entry: TimeEntry) -> Dict[str, Any]:
    return {
        "time_entry_id": entry.time_entry_id,
        "employee_id": entry.employee_id,
        "job_id": entry.job_id,
        "clock_in_at": isoformat_or_none(entry.clock_in_at),
        "clock_out_at": isoformat_or_none(entry.clock_out_at),
        "geo_ok_in": entry.geo_ok_in,
        "geo_ok_out": entry.geo_ok_out,
        "approved": bool(entry.approved),
        "approved_by": entry.approved_by,
        "approved_at": isoformat_or_none(entry.approved_at),
        "requires_reapproval": bool(entry.requires_reapproval),
        "invoice_id": entry.invoice_id,
        "invoiced_at": isoformat_or_none(entry.invoiced_at),
        "exception_tags": list(entry.exception_tags or []),
        "notes": entry.notes,
    }


def record_audit(
    db: Session,
    *,
    company_id: int,
    actor_id: str,
    action: str,
    target_type: str,
    target_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AuditLogEntry:
    row = AuditLogEntry(
        company_id=int(company_id),
        actor_id=str(actor_id),
        action=action,
        target_type=target_type,
        target_id=str(target_id),
        before=before,
        after=after,
        reason=reason,
        created_at=now or utcnow(),
    )
    db.add(row)
    db.flush()

    logger.info(
        "audit",
        extra={
            "audit_id": row.id,
            "company_id": int(company_id),
            "actor_id": str(actor_id),
            "action": action,
            "target_type": target_type,
            "target_id": str(target_id),
        },
    )
    return row


def list_audit_logs(
    db: Session,
    company_id: int,
    *,
    target_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuditLogEntry]:
    q = db.query(AuditLogEntry).filter(AuditLogEntry.company_id == int(company_id))

    if target_id is not None:
        q = q.filter(AuditLogEntry.target_id == str(target_id))
    if action is not None:
        q = q.filter(AuditLogEntry.action == str(action))

    return (
        q.order_by(AuditLogEntry.id.asc())
        .offset(int(offset))
        .limit(int(limit))
        .all()
    )
