from fastapi import HTTPException

from fieldclock.core.errors import ClockError

RETRY_AFTER_SECONDS = "1"


def http_error(exc: ClockError) -> HTTPException:
    headers = None
    if getattr(exc, "retryable", False):
        headers = {"Retry-After": RETRY_AFTER_SECONDS}
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail(), headers=headers)
