from sqlalchemy import JSON, Column, DateTime, Integer, String

from fieldclock.database import Base


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    # sha256 of (company, employee, job, client_event_id, operation)
    key = Column(String(64), primary_key=True)

    company_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(Integer, nullable=False)
    operation = Column(String, nullable=False)
    client_event_id = Column(String, nullable=False)
    device_id = Column(String, nullable=True)
    time_entry_id = Column(String, nullable=True)

    result = Column(JSON, nullable=False)

    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
