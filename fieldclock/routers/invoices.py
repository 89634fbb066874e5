from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from fieldclock.core.authorization import Role, require_role
from fieldclock.core.errors import ClockError
from fieldclock.core.settings import ClockSettings, get_settings
from fieldclock.database import SessionLocal
from fieldclock.deps.errors import http_error
from fieldclock.schemas.billing import InvoiceFromEntriesRequest, InvoiceFromEntriesResponse, InvoiceResponse
from fieldclock.services import invoice_lock

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/from_entries", response_model=InvoiceFromEntriesResponse)
def create_invoice_from_entries_endpoint(
    payload: InvoiceFromEntriesRequest,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
    settings: ClockSettings = Depends(get_settings),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    try:
        result = invoice_lock.create_invoice_from_entries(
            company_id=int(x_company_id),
            actor_id=str(request.state.user_id),
            job_id=payload.job_id,
            customer_id=payload.customer_id,
            entry_ids=payload.time_entry_ids,
            hourly_rate=payload.hourly_rate,
            due_date=payload.due_date,
            notes=payload.notes,
            settings=settings,
        )
    except ClockError as exc:
        raise http_error(exc) from exc

    return InvoiceFromEntriesResponse(
        invoice_id=result.invoice_id,
        total_hours=result.total_hours,
        total_amount=result.total_amount,
        entries_locked=result.entries_locked,
    )


@router.get("", response_model=List[InvoiceResponse])
def list_invoices(
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
    job_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        rows = invoice_lock.list_invoices(db, int(x_company_id), job_id=job_id, limit=limit, offset=offset)
        return [InvoiceResponse.model_validate(r) for r in rows]
    finally:
        db.close()


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: str,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        row = invoice_lock.get_invoice(db, int(x_company_id), invoice_id)
        if row is None:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return InvoiceResponse.model_validate(row)
    finally:
        db.close()
