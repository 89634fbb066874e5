from datetime import datetime

from sqlalchemy import JSON, BigInteger, Column, Date, DateTime, Float, Integer, String, Text, event, inspect

from fieldclock.core.errors import ImmutableRecordError
from fieldclock.database import Base

INVOICE_STATUSES = ("pending", "sent", "paid")

# Status transitions belong to the billing collaborator; everything else is frozen.
_MUTABLE_INVOICE_COLUMNS = {"status", "updated_at"}


class Invoice(Base):
    __tablename__ = "invoices"

    invoice_id = Column(String, primary_key=True, index=True)

    company_id = Column(Integer, nullable=False, index=True)
    job_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(String, nullable=False, index=True)

    status = Column(String, nullable=False, default="pending")
    currency = Column(String, nullable=False, default="USD")

    hourly_rate_cents = Column(Integer, nullable=False)
    total_seconds = Column(BigInteger, nullable=False)
    total_hours = Column(Float, nullable=False)
    total_amount_cents = Column(BigInteger, nullable=False)

    line_items = Column(JSON, nullable=False)
    time_entry_ids = Column(JSON, nullable=False)

    due_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


@event.listens_for(Invoice, "before_update")
def _block_invoice_mutation(mapper, connection, target) -> None:
    state = inspect(target)
    for attr in state.attrs:
        if attr.key in _MUTABLE_INVOICE_COLUMNS:
            continue
        if attr.history.has_changes():
            raise ImmutableRecordError("invoices", f"invoices.{attr.key} is immutable after creation")


@event.listens_for(Invoice, "before_delete")
def _block_invoice_delete(mapper, connection, target) -> None:
    raise ImmutableRecordError("invoices")
