from fastapi import APIRouter, Depends, Header, HTTPException, Request

from fieldclock.core.authorization import Role, require_role
from fieldclock.core.errors import ClockError
from fieldclock.core.settings import ClockSettings, get_settings
from fieldclock.deps.errors import http_error
from fieldclock.schemas.billing import BulkApproveRequest, BulkApproveResponse
from fieldclock.services.bulk_approval import bulk_approve

router = APIRouter(prefix="/approvals", tags=["Approvals"])


@router.post("/bulk", response_model=BulkApproveResponse)
def bulk_approve_endpoint(
    payload: BulkApproveRequest,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
    settings: ClockSettings = Depends(get_settings),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    try:
        result = bulk_approve(
            company_id=int(x_company_id),
            actor_id=str(request.state.user_id),
            entry_ids=payload.time_entry_ids,
            settings=settings,
        )
    except ClockError as exc:
        raise http_error(exc) from exc

    return BulkApproveResponse(
        approved_count=result.approved_count,
        failed_count=result.failed_count,
        errors=result.errors,
    )
