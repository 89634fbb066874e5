from fieldclock.models.assignment import Assignment
from fieldclock.models.audit_log import AuditLogEntry
from fieldclock.models.employee import Employee
from fieldclock.models.idempotency_record import IdempotencyRecord
from fieldclock.models.invoice import Invoice
from fieldclock.models.job import Job
from fieldclock.models.time_entry import TimeEntry

__all__ = [
    "Assignment",
    "AuditLogEntry",
    "Employee",
    "IdempotencyRecord",
    "Invoice",
    "Job",
    "TimeEntry",
]
