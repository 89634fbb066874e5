"""
Invoice creation from approved time entries.

Creating an invoice locks its entries: each one gets invoice_id/invoiced_at
through a conditional update, so two invoices can never claim the same entry.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from fieldclock.core.errors import (
    AlreadyInvoiced,
    CrossTenantAccess,
    EntryNotFound,
    EntryStillOpen,
    InvalidInput,
    JobMismatch,
    JobNotFound,
    NotApproved,
)
from fieldclock.core.settings import ClockSettings
from fieldclock.core.timeutil import utcnow
from fieldclock.database import run_in_transaction
from fieldclock.models.invoice import Invoice
from fieldclock.models.job import Job
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services.audit import record_audit

logger = logging.getLogger(__name__)

CURRENCY = "USD"
SECONDS_PER_HOUR = Decimal(3600)
CENT = Decimal("0.01")
ROUNDING_MODES = {"nearest": ROUND_HALF_UP, "up": ROUND_CEILING, "down": ROUND_FLOOR}


@dataclass(frozen=True)
class InvoiceResult:
    invoice_id: str
    total_hours: float
    total_amount: float
    entries_locked: int


def calculate_entry_seconds(entry: TimeEntry) -> int:
    if entry.clock_in_at is None or entry.clock_out_at is None:
        raise EntryStillOpen("Time entry is still clocked in", time_entry_id=entry.time_entry_id)

    seconds = (entry.clock_out_at - entry.clock_in_at).total_seconds()
    if seconds < 0:
        raise InvalidInput("Time entry has clock-out before clock-in", time_entry_id=entry.time_entry_id)
    return int(seconds)


def round_hours(hours: Decimal, round_to: float, mode: str = "nearest") -> Decimal:
    """Round hours to an increment (0.25 = quarter hour). round_to <= 0 returns hours unchanged."""
    increment = Decimal(str(round_to))
    if increment <= 0:
        return hours
    if mode not in ROUNDING_MODES:
        raise InvalidInput(f"Unknown rounding mode: {mode}")

    steps = (hours / increment).quantize(Decimal(1), rounding=ROUNDING_MODES[mode])
    return steps * increment


def calculate_totals(
    entries: Iterable[TimeEntry],
    hourly_rate: Decimal,
    *,
    round_to: float = 0.0,
    mode: str = "nearest",
) -> Tuple[int, Decimal, Decimal]:
    """Return (total_seconds, billable_hours, amount) with amount rounded half-up to the cent."""
    total_seconds = 0
    total_hours = Decimal(0)
    for entry in entries:
        seconds = calculate_entry_seconds(entry)
        total_seconds += seconds
        total_hours += round_hours(Decimal(seconds) / SECONDS_PER_HOUR, round_to, mode)

    amount = (total_hours * hourly_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return total_seconds, total_hours, amount


def _parse_rate(hourly_rate) -> Decimal:
    try:
        rate = Decimal(str(hourly_rate))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInput("hourly_rate must be a number") from exc

    if not rate.is_finite() or rate <= 0:
        raise InvalidInput("hourly_rate must be positive")
    if rate != rate.quantize(CENT):
        raise InvalidInput("hourly_rate must have at most two decimal places")
    return rate


def _validate_ids(entry_ids: Sequence[str], max_entries: int) -> List[str]:
    ids = [str(x) for x in (entry_ids or [])]
    if not ids:
        raise InvalidInput("time_entry_ids must not be empty")
    if len(ids) > max_entries:
        raise InvalidInput(f"Cannot invoice more than {max_entries} entries at once")
    if len(set(ids)) != len(ids):
        raise InvalidInput("time_entry_ids contains duplicates")
    return ids


def _load_and_check_entries(db: Session, company_id: int, job_id: int, ids: List[str]) -> List[TimeEntry]:
    rows = (
        db.query(TimeEntry)
        .filter(TimeEntry.time_entry_id.in_(ids))
        .with_for_update()
        .all()
    )
    by_id = {row.time_entry_id: row for row in rows}

    entries = []
    for time_entry_id in ids:
        entry = by_id.get(time_entry_id)
        if entry is None:
            raise EntryNotFound("Time entry not found", time_entry_id=time_entry_id)

        if entry.company_id != company_id:
            logger.warning(
                "createInvoice: cross-tenant entry blocked",
                extra={"company_id": company_id, "time_entry_id": time_entry_id},
            )
            raise CrossTenantAccess("Time entry belongs to another company", time_entry_id=time_entry_id)

        if entry.job_id != job_id:
            raise JobMismatch("Time entry belongs to a different job", time_entry_id=time_entry_id)

        if not entry.approved:
            raise NotApproved("Time entry is not approved", time_entry_id=time_entry_id)

        if entry.invoice_id is not None:
            raise AlreadyInvoiced(
                "Time entry already invoiced",
                time_entry_id=time_entry_id,
                invoice_id=entry.invoice_id,
            )

        if entry.is_open:
            raise EntryStillOpen("Time entry is still clocked in", time_entry_id=time_entry_id)

        entries.append(entry)
    return entries


def create_invoice_from_entries(
    company_id: int,
    actor_id: str,
    job_id: int,
    customer_id: str,
    entry_ids: Sequence[str],
    hourly_rate,
    due_date: date,
    *,
    notes: Optional[str] = None,
    settings: ClockSettings,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> InvoiceResult:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    Any failure leaves no invoice and no locked entries behind.
    """
    if db is None:
        return run_in_transaction(
            lambda session: create_invoice_from_entries(
                company_id,
                actor_id,
                job_id,
                customer_id,
                entry_ids,
                hourly_rate,
                due_date,
                notes=notes,
                settings=settings,
                now=now,
                db=session,
            )
        )

    company_id = int(company_id)
    job_id = int(job_id)
    actor_id = str(actor_id)
    now = now or utcnow()

    ids = _validate_ids(entry_ids, settings.invoice_max_entries)
    rate = _parse_rate(hourly_rate)
    customer_id = str(customer_id or "").strip()
    if not customer_id:
        raise InvalidInput("customer_id is required")
    if due_date is None:
        raise InvalidInput("due_date is required")

    logger.info(
        "createInvoice: Request received",
        extra={"company_id": company_id, "actor_id": actor_id, "job_id": job_id, "count": len(ids)},
    )

    job = db.query(Job).filter(Job.id == job_id, Job.company_id == company_id).first()
    if job is None:
        raise JobNotFound("Job not found", job_id=job_id)

    entries = _load_and_check_entries(db, company_id, job_id, ids)

    total_seconds, billable_hours, amount = calculate_totals(
        entries,
        rate,
        round_to=settings.billing_round_to_hours,
        mode=settings.billing_rounding_mode,
    )
    total_hours = round(float(billable_hours), 4)
    amount_cents = int(amount * 100)

    invoice = Invoice(
        invoice_id=str(uuid4()),
        company_id=company_id,
        job_id=job_id,
        customer_id=customer_id,
        status="pending",
        currency=CURRENCY,
        hourly_rate_cents=int(rate * 100),
        total_seconds=total_seconds,
        total_hours=total_hours,
        total_amount_cents=amount_cents,
        line_items=[
            {
                "description": f"Labor - {job.name}",
                "job_id": job_id,
                "quantity_hours": total_hours,
                "unit_price_cents": int(rate * 100),
                "amount_cents": amount_cents,
            }
        ],
        time_entry_ids=ids,
        due_date=due_date,
        notes=notes,
        created_by=actor_id,
        created_at=now,
        updated_at=now,
    )
    db.add(invoice)
    db.flush()

    locked = (
        db.query(TimeEntry)
        .filter(
            TimeEntry.time_entry_id.in_(ids),
            TimeEntry.company_id == company_id,
            TimeEntry.approved.is_(True),
            TimeEntry.invoice_id.is_(None),
        )
        .update(
            {
                TimeEntry.invoice_id: invoice.invoice_id,
                TimeEntry.invoiced_at: now,
                TimeEntry.updated_at: now,
                TimeEntry.version_id: TimeEntry.version_id + 1,
            },
            synchronize_session="fetch",
        )
    )
    if locked != len(ids):
        logger.warning(
            "createInvoice: lock race lost",
            extra={"company_id": company_id, "expected": len(ids), "locked": locked},
        )
        raise AlreadyInvoiced("One or more entries were invoiced concurrently")

    record_audit(
        db,
        company_id=company_id,
        actor_id=actor_id,
        action="invoice.create_from_entries",
        target_type="invoice",
        target_id=invoice.invoice_id,
        before=None,
        after={
            "invoice_id": invoice.invoice_id,
            "job_id": job_id,
            "customer_id": customer_id,
            "time_entry_ids": ids,
            "total_seconds": total_seconds,
            "total_hours": total_hours,
            "total_amount_cents": amount_cents,
        },
        now=now,
    )
    db.flush()

    logger.info(
        "createInvoice: Success",
        extra={
            "company_id": company_id,
            "invoice_id": invoice.invoice_id,
            "entries_locked": locked,
            "total_hours": total_hours,
            "total_amount_cents": amount_cents,
        },
    )
    return InvoiceResult(
        invoice_id=invoice.invoice_id,
        total_hours=total_hours,
        total_amount=float(amount),
        entries_locked=locked,
    )


def get_invoice(db: Session, company_id: int, invoice_id: str) -> Optional[Invoice]:
    return (
        db.query(Invoice)
        .filter(Invoice.invoice_id == str(invoice_id), Invoice.company_id == int(company_id))
        .first()
    )


def list_invoices(db: Session, company_id: int, *, job_id: Optional[int] = None, limit: int = 100, offset: int = 0) -> List[Invoice]:
    q = db.query(Invoice).filter(Invoice.company_id == int(company_id))
    if job_id is not None:
        q = q.filter(Invoice.job_id == int(job_id))
    return q.order_by(Invoice.created_at.desc()).offset(int(offset)).limit(int(limit)).all()
