from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from fieldclock.database import SessionLocal
from fieldclock.models.employee import Employee
from fieldclock.models.invoice import Invoice
from fieldclock.models.job import Job
from fieldclock.models.time_entry import TimeEntry

T0 = datetime(2026, 3, 2, 8, 0, 0)


def test_check_constraint_blocks_non_positive_job_radius():
    db = SessionLocal()
    try:
        db.add(Job(company_id=1, name="CK Job", latitude=0.0, longitude=0.0, radius_m=0))

        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    finally:
        db.close()


def test_check_constraint_blocks_clock_out_before_clock_in():
    db = SessionLocal()
    try:
        job = Job(company_id=1, name="CK Job", latitude=0.0, longitude=0.0, radius_m=100.0)
        employee = Employee(company_id=1, name="CK Employee")
        db.add_all([job, employee])
        db.flush()

        db.add(
            TimeEntry(
                time_entry_id="ck-entry-1",
                company_id=1,
                employee_id=employee.id,
                job_id=job.id,
                clock_in_at=T0,
                clock_out_at=T0 - timedelta(minutes=1),  # should fail ck_time_entries_clock_out_after_clock_in
                clock_in_lat=0.0,
                clock_in_lng=0.0,
                clock_in_distance_m=0.0,
                geo_ok_in=True,
                radius_used_m=100.0,
                exception_tags=[],
                clock_in_event_id="evt-ck",
                created_at=T0,
                updated_at=T0,
            )
        )

        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    finally:
        db.close()


@pytest.mark.parametrize(
    "overrides",
    [
        {"status": "void"},  # ck_invoices_status
        {"hourly_rate_cents": 0},  # ck_invoices_rate_positive
        {"total_amount_cents": -1},  # ck_invoices_total_amount_nonnegative
    ],
)
def test_check_constraint_blocks_bad_invoice_values(overrides):
    values = dict(
        invoice_id="ck-invoice-1",
        company_id=1,
        job_id=1,
        customer_id="cust-1",
        status="pending",
        currency="USD",
        hourly_rate_cents=5000,
        total_seconds=3600,
        total_hours=1.0,
        total_amount_cents=5000,
        line_items=[],
        time_entry_ids=[],
        due_date=date(2026, 4, 1),
        created_by="manager-1",
        created_at=T0,
        updated_at=T0,
    )
    values.update(overrides)

    db = SessionLocal()
    try:
        db.add(Invoice(**values))

        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    finally:
        db.close()
