from typing import Any, Optional


class ClockError(ValueError):
    """Base for every typed failure the engine returns to a caller."""

    code = "clock_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


# input-validation


class InvalidInput(ClockError):
    code = "invalid_input"
    status_code = 400


class PoorGpsAccuracy(ClockError):
    code = "poor_gps_accuracy"
    status_code = 400


class InvalidEdit(ClockError):
    code = "invalid_edit"
    status_code = 400


# not found


class JobNotFound(ClockError):
    code = "job_not_found"
    status_code = 404


class EntryNotFound(ClockError):
    code = "entry_not_found"
    status_code = 404


# forbidden


class NoAssignment(ClockError):
    code = "no_assignment"
    status_code = 403


class NotEntryOwner(ClockError):
    code = "not_entry_owner"
    status_code = 403


class CrossTenantAccess(ClockError):
    code = "cross_tenant_access"
    status_code = 403


class ForceNotPermitted(ClockError):
    code = "force_not_permitted"
    status_code = 403


# geofence-hard


class OutsideGeofence(ClockError):
    code = "outside_geofence"
    status_code = 422

    def __init__(self, distance_m: float, effective_radius_m: float):
        super().__init__(
            f"Outside geofence: {distance_m:.1f}m from job site (max {effective_radius_m:.1f}m)",
            distance_m=distance_m,
            effective_radius_m=effective_radius_m,
        )
        self.distance_m = distance_m
        self.effective_radius_m = effective_radius_m


# state-conflict


class AlreadyClockedIn(ClockError):
    code = "already_clocked_in"
    status_code = 409


class NotClockedIn(ClockError):
    code = "not_clocked_in"
    status_code = 409


class AlreadyApproved(ClockError):
    code = "already_approved"
    status_code = 409


class NotApproved(ClockError):
    code = "not_approved"
    status_code = 409


class AlreadyInvoiced(ClockError):
    code = "already_invoiced"
    status_code = 409


class EntryStillOpen(ClockError):
    code = "entry_still_open"
    status_code = 409


class JobMismatch(ClockError):
    code = "job_mismatch"
    status_code = 409


class LockedEntry(ClockError):
    code = "locked_entry"
    status_code = 409


# infrastructure


class StoreUnavailable(ClockError):
    """Store timed out or dropped the connection. Safe to retry with the same key."""

    code = "store_unavailable"
    status_code = 503
    retryable = True


class StoreConflict(ClockError):
    code = "store_conflict"
    status_code = 503
    retryable = True


class ImmutableRecordError(RuntimeError):
    """Raised by ORM guards when an append-only or locked row is modified."""

    def __init__(self, table: str, detail: Optional[str] = None):
        super().__init__(detail or f"{table} is immutable")
        self.table = table
