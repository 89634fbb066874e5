import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip() not in {"0", "false", "False", "no", "NO", "off"}


@dataclass(frozen=True)
class ClockSettings:
    geofence_enforced: bool = True
    geofence_default_radius_m: float = 100.0
    gps_max_accuracy_m: float = 200.0

    overlong_shift_hours: float = 12.0
    auto_clockout_hours: float = 12.0
    auto_clockout_batch_size: int = 100

    idempotency_ttl_hours: int = 48
    client_event_id_ttl_hours: int = 24

    bulk_approve_max: int = 500
    bulk_approve_chunk: int = 500
    invoice_max_entries: int = 100

    billing_round_to_hours: float = 0.0
    billing_rounding_mode: str = "nearest"


def load_settings() -> ClockSettings:
    """Read runtime policy from the environment.

    Called per request (see get_settings) so kill switches such as
    GEOFENCE_ENFORCED take effect without a restart.
    """
    return ClockSettings(
        geofence_enforced=_env_bool("GEOFENCE_ENFORCED", True),
        geofence_default_radius_m=_env_float("GEOFENCE_DEFAULT_RADIUS_M", 100.0),
        gps_max_accuracy_m=_env_float("GPS_MAX_ACCURACY_M", 200.0),
        overlong_shift_hours=_env_float("OVERLONG_SHIFT_HOURS", 12.0),
        auto_clockout_hours=_env_float("AUTO_CLOCKOUT_HOURS", 12.0),
        auto_clockout_batch_size=_env_int("AUTO_CLOCKOUT_BATCH_SIZE", 100),
        idempotency_ttl_hours=_env_int("IDEMPOTENCY_TTL_HOURS", 48),
        client_event_id_ttl_hours=_env_int("CLIENT_EVENT_ID_TTL_HOURS", 24),
        bulk_approve_max=_env_int("BULK_APPROVE_MAX", 500),
        bulk_approve_chunk=_env_int("BULK_APPROVE_CHUNK", 500),
        invoice_max_entries=_env_int("INVOICE_MAX_ENTRIES", 100),
        billing_round_to_hours=_env_float("BILLING_ROUND_TO_HOURS", 0.0),
        billing_rounding_mode=os.getenv("BILLING_ROUNDING_MODE", "nearest").strip().lower() or "nearest",
    )


def get_settings() -> ClockSettings:
    return load_settings()
