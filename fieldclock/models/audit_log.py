from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, event

from fieldclock.core.errors import ImmutableRecordError
from fieldclock.database import Base


class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    __table_args__ = (
        Index("ix_audit_log_company_target", "company_id", "target_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    company_id = Column(Integer, nullable=False, index=True)
    actor_id = Column(String, nullable=False)
    action = Column(String, nullable=False, index=True)

    target_type = Column(String, nullable=False)  # time_entry|invoice
    target_id = Column(String, nullable=False)

    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


@event.listens_for(AuditLogEntry, "before_update")
def _block_audit_update(mapper, connection, target) -> None:
    raise ImmutableRecordError("audit_log")


@event.listens_for(AuditLogEntry, "before_delete")
def _block_audit_delete(mapper, connection, target) -> None:
    raise ImmutableRecordError("audit_log")
