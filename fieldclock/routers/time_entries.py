from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from fieldclock.core.authorization import Role, current_role, has_role, require_role
from fieldclock.core.errors import ClockError
from fieldclock.core.settings import ClockSettings, get_settings
from fieldclock.core.timeutil import to_naive_utc
from fieldclock.database import SessionLocal
from fieldclock.deps.auth import require_auth, require_employee
from fieldclock.deps.errors import http_error
from fieldclock.models.time_entry import TimeEntry
from fieldclock.schemas.time_entry import (
    ClockInRequest,
    ClockInResponse,
    ClockOutRequest,
    ClockOutResponse,
    DisputeRequest,
    DisputeResponse,
    EditTimeEntryRequest,
    EditTimeEntryResponse,
    TimeEntryResponse,
)
from fieldclock.services import exception_tagger, time_engine, time_entry_edits
from fieldclock.services.exception_tagger import ExceptionTag

router = APIRouter(
    prefix="/time_entries",
    tags=["Time Entries"],
)


def _visible_employee_id(request: Request) -> Optional[int]:
    """Employees only see their own entries; managers see the whole company."""
    if has_role(current_role(request), Role.MANAGER):
        return None
    employee_id = request.state.employee_id
    if employee_id is None:
        raise HTTPException(status_code=403, detail="Token has no employee_id claim")
    return employee_id


@router.get("", response_model=list[TimeEntryResponse])
def list_time_entries(
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _auth: tuple[str, int] = Depends(require_auth),
    employee_id: Optional[int] = None,
    job_id: Optional[int] = None,
    approved: Optional[bool] = None,
    invoiced: Optional[bool] = None,
    open_only: bool = False,
    exception_tag: Optional[ExceptionTag] = None,
    clock_in_from: Optional[datetime] = None,
    clock_in_to: Optional[datetime] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    own_employee_id = _visible_employee_id(request)
    if own_employee_id is not None:
        employee_id = own_employee_id

    db = SessionLocal()
    try:
        q = db.query(TimeEntry).filter(TimeEntry.company_id == int(x_company_id))

        if employee_id is not None:
            q = q.filter(TimeEntry.employee_id == int(employee_id))
        if job_id is not None:
            q = q.filter(TimeEntry.job_id == int(job_id))
        if approved is not None:
            q = q.filter(TimeEntry.approved.is_(bool(approved)))
        if invoiced is True:
            q = q.filter(TimeEntry.invoice_id.isnot(None))
        elif invoiced is False:
            q = q.filter(TimeEntry.invoice_id.is_(None))
        if open_only:
            q = q.filter(TimeEntry.clock_out_at.is_(None))
        if clock_in_from is not None:
            q = q.filter(TimeEntry.clock_in_at >= to_naive_utc(clock_in_from))
        if clock_in_to is not None:
            q = q.filter(TimeEntry.clock_in_at <= to_naive_utc(clock_in_to))
        if exception_tag is not None:
            q = q.filter(exception_tagger.tag_filter(exception_tag, db.get_bind().dialect.name))

        rows = q.order_by(TimeEntry.clock_in_at.desc()).offset(int(offset)).limit(int(limit)).all()

        return [TimeEntryResponse.model_validate(r) for r in rows]
    finally:
        db.close()


@router.get("/active", response_model=Optional[TimeEntryResponse])
def get_active_time_entry(
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    employee_id: int = Depends(require_employee),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        entry = time_engine.get_active_entry(int(x_company_id), employee_id, db=db)
        return TimeEntryResponse.model_validate(entry) if entry is not None else None
    finally:
        db.close()


@router.get("/{time_entry_id}", response_model=TimeEntryResponse)
def get_time_entry(
    time_entry_id: str,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _auth: tuple[str, int] = Depends(require_auth),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    own_employee_id = _visible_employee_id(request)

    db = SessionLocal()
    try:
        entry = (
            db.query(TimeEntry)
            .filter(
                TimeEntry.time_entry_id == str(time_entry_id),
                TimeEntry.company_id == int(x_company_id),
            )
            .first()
        )
        if entry is None or (own_employee_id is not None and entry.employee_id != own_employee_id):
            raise HTTPException(status_code=404, detail="Time entry not found")
        return TimeEntryResponse.model_validate(entry)
    finally:
        db.close()


@router.post("/clock_in", response_model=ClockInResponse)
def clock_in_endpoint(
    payload: ClockInRequest,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    employee_id: int = Depends(require_employee),
    settings: ClockSettings = Depends(get_settings),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    try:
        result = time_engine.clock_in(
            company_id=int(x_company_id),
            employee_id=employee_id,
            job_id=payload.job_id,
            lat=payload.lat,
            lng=payload.lng,
            accuracy_m=payload.accuracy_m,
            client_event_id=payload.client_event_id,
            device_id=payload.device_id,
            settings=settings,
        )
    except ClockError as exc:
        raise http_error(exc) from exc

    return ClockInResponse(time_entry_id=result.time_entry_id, replayed=result.replayed)


@router.post("/clock_out", response_model=ClockOutResponse)
def clock_out_endpoint(
    payload: ClockOutRequest,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    employee_id: int = Depends(require_employee),
    settings: ClockSettings = Depends(get_settings),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    try:
        result = time_engine.clock_out(
            company_id=int(x_company_id),
            employee_id=employee_id,
            time_entry_id=payload.time_entry_id,
            lat=payload.lat,
            lng=payload.lng,
            accuracy_m=payload.accuracy_m,
            client_event_id=payload.client_event_id,
            device_id=payload.device_id,
            settings=settings,
        )
    except ClockError as exc:
        raise http_error(exc) from exc

    return ClockOutResponse(
        ok=result.ok,
        time_entry_id=result.time_entry_id,
        warning=result.warning,
        replayed=result.replayed,
    )


@router.patch("/{time_entry_id}", response_model=EditTimeEntryResponse)
def edit_time_entry_endpoint(
    time_entry_id: str,
    payload: EditTimeEntryRequest,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    role: Role = Depends(require_role(Role.MANAGER)),
    settings: ClockSettings = Depends(get_settings),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    fields = payload.model_dump(exclude_unset=True, exclude={"force", "reason"})

    try:
        result = time_entry_edits.edit_time_entry(
            company_id=int(x_company_id),
            actor_id=str(request.state.user_id),
            actor_role=role.value,
            time_entry_id=time_entry_id,
            fields=fields,
            force=payload.force,
            reason=payload.reason,
            settings=settings,
        )
    except ClockError as exc:
        raise http_error(exc) from exc

    return EditTimeEntryResponse(
        ok=result.ok,
        time_entry_id=result.time_entry_id,
        has_overlap=result.has_overlap,
        requires_reapproval=result.requires_reapproval,
    )


@router.post("/{time_entry_id}/dispute", response_model=DisputeResponse)
def dispute_time_entry_endpoint(
    time_entry_id: str,
    payload: DisputeRequest,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _auth: tuple[str, int] = Depends(require_auth),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    try:
        result = time_entry_edits.dispute_time_entry(
            company_id=int(x_company_id),
            actor_id=str(request.state.user_id),
            actor_role=current_role(request).value,
            time_entry_id=time_entry_id,
            actor_employee_id=request.state.employee_id,
            reason=payload.reason,
            force=payload.force,
        )
    except ClockError as exc:
        raise http_error(exc) from exc

    return DisputeResponse(time_entry_id=result.time_entry_id, exception_tags=result.exception_tags)
