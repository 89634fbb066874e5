from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.ext.mutable import MutableList

from fieldclock.database import Base


class TimeEntry(Base):
    __tablename__ = "time_entries"

    __table_args__ = (
        # At most one open entry per (company, employee).
        Index(
            "uq_time_entries_open",
            "company_id",
            "employee_id",
            unique=True,
            postgresql_where=text("clock_out_at IS NULL"),
            sqlite_where=text("clock_out_at IS NULL"),
        ),
        Index("ix_time_entries_company_employee_clock_in", "company_id", "employee_id", "clock_in_at"),
        Index("ix_time_entries_open_clock_in", "clock_out_at", "clock_in_at"),
    )

    time_entry_id = Column(String, primary_key=True, index=True)

    company_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)

    clock_in_at = Column(DateTime, nullable=False)
    clock_out_at = Column(DateTime, nullable=True)

    clock_in_lat = Column(Float, nullable=False)
    clock_in_lng = Column(Float, nullable=False)
    clock_in_accuracy_m = Column(Float, nullable=True)
    clock_in_distance_m = Column(Float, nullable=False)
    geo_ok_in = Column(Boolean, nullable=False)

    clock_out_lat = Column(Float, nullable=True)
    clock_out_lng = Column(Float, nullable=True)
    clock_out_accuracy_m = Column(Float, nullable=True)
    clock_out_distance_m = Column(Float, nullable=True)
    geo_ok_out = Column(Boolean, nullable=True)

    radius_used_m = Column(Float, nullable=False)

    approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    requires_reapproval = Column(Boolean, nullable=False, default=False)

    invoice_id = Column(String, ForeignKey("invoices.invoice_id"), nullable=True, index=True)
    invoiced_at = Column(DateTime, nullable=True)

    exception_tags = Column(MutableList.as_mutable(JSON), nullable=False, default=list)
    geofence_violation_distance_m = Column(Float, nullable=True)
    auto_closed_reason = Column(String, nullable=True)

    clock_in_event_id = Column(String, nullable=False)
    clock_out_event_id = Column(String, nullable=True)
    device_id = Column(String, nullable=True)
    clock_out_device_id = Column(String, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Every ORM UPDATE is conditional on the version read; a concurrent commit
    # turns the flush into StaleDataError.
    version_id = Column(Integer, nullable=False, default=1, server_default="1")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.clock_out_at is None
