import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from fieldclock.core.errors import InvalidInput
from fieldclock.models.idempotency_record import IdempotencyRecord

logger = logging.getLogger(__name__)

OP_CLOCK_IN = "clock_in"
OP_CLOCK_OUT = "clock_out"

_EVENT_ID_RE = re.compile(r"^[A-Za-z0-9_:-]{1,64}$")
_EVENT_ID_TIMESTAMP_RE = re.compile(r"^(\d{13})-")
_CLOCK_SKEW = timedelta(minutes=5)


def build_event_key(
    company_id: int,
    employee_id: int,
    job_id: int,
    client_event_id: str,
    operation: str,
) -> str:
    combined = "|".join(
        [str(int(company_id)), str(int(employee_id)), str(int(job_id)), str(client_event_id), str(operation)]
    )
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def validate_client_event_id(client_event_id: Optional[str], now: datetime, ttl_hours: int) -> str:
    """
    Reject malformed or stale client event IDs.

    IDs prefixed with a 13-digit epoch-millis timestamp ("{ms}-{uuid}") must be
    younger than ttl_hours so an old captured request cannot be replayed.
    """
    if not client_event_id or not _EVENT_ID_RE.match(client_event_id):
        raise InvalidInput("client_event_id must be 1-64 characters of [A-Za-z0-9_:-]")

    match = _EVENT_ID_TIMESTAMP_RE.match(client_event_id)
    if match:
        issued_at = datetime.fromtimestamp(int(match.group(1)) / 1000.0, tz=timezone.utc).replace(tzinfo=None)
        if issued_at - now > _CLOCK_SKEW:
            raise InvalidInput("client_event_id timestamp is in the future")
        if now - issued_at >= timedelta(hours=int(ttl_hours)):
            raise InvalidInput(f"client_event_id expired; must be created within the last {int(ttl_hours)} hours")

    return client_event_id


def resolve(db: Session, key: str, now: datetime) -> Optional[Dict[str, Any]]:
    row = db.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).one_or_none()
    if row is None:
        return None

    if row.expires_at <= now:
        logger.info("Idempotency record expired", extra={"idempotency_key": key})
        db.delete(row)
        db.flush()
        return None

    return dict(row.result)


def record(
    db: Session,
    key: str,
    *,
    company_id: int,
    employee_id: int,
    operation: str,
    client_event_id: str,
    device_id: Optional[str],
    time_entry_id: Optional[str],
    result: Dict[str, Any],
    now: datetime,
    ttl_hours: int,
) -> IdempotencyRecord:
    """Add the record to the caller's transaction. Never commits."""
    row = IdempotencyRecord(
        key=key,
        company_id=int(company_id),
        employee_id=int(employee_id),
        operation=operation,
        client_event_id=client_event_id,
        device_id=device_id,
        time_entry_id=time_entry_id,
        result=result,
        created_at=now,
        expires_at=now + timedelta(hours=int(ttl_hours)),
    )
    db.add(row)
    return row


def purge_expired(db: Session, now: datetime) -> int:
    deleted = (
        db.query(IdempotencyRecord)
        .filter(IdempotencyRecord.expires_at <= now)
        .delete(synchronize_session=False)
    )
    if deleted:
        logger.info("Purged expired idempotency records", extra={"deleted": int(deleted)})
    return int(deleted or 0)
