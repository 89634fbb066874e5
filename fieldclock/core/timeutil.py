from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    # Columns are naive UTC; keep naive comparisons everywhere.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_or_none(dt: Optional[datetime]) -> Optional[str]:
    return None if dt is None else dt.isoformat()
