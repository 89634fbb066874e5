from fastapi import APIRouter, Depends, Header, HTTPException, Request

from fieldclock.core.authorization import Role, require_role
from fieldclock.core.errors import ClockError
from fieldclock.core.settings import ClockSettings, get_settings
from fieldclock.deps.errors import http_error
from fieldclock.schemas.sweep import SweepRequest, SweepResponse
from fieldclock.services.auto_clockout import run_auto_clockout

router = APIRouter(prefix="/sweeps", tags=["Sweeps"])


@router.post("/auto_clockout", response_model=SweepResponse)
def run_auto_clockout_endpoint(
    request: Request,
    payload: SweepRequest = SweepRequest(),
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.ADMIN)),
    settings: ClockSettings = Depends(get_settings),
):
    """Manual trigger for the same sweep the background worker runs."""
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    try:
        result = run_auto_clockout(settings=settings, dry_run=payload.dry_run, company_id=int(x_company_id))
    except ClockError as exc:
        raise http_error(exc) from exc

    return SweepResponse(
        processed_count=result.processed_count,
        entries=result.entries,
        dry_run=result.dry_run,
    )
