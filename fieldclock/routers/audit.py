from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from fieldclock.core.authorization import Role, require_role
from fieldclock.database import SessionLocal
from fieldclock.schemas.audit import AuditLogResponse
from fieldclock.services.audit import list_audit_logs

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("", response_model=List[AuditLogResponse])
def list_audit(
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
    target_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        rows = list_audit_logs(
            db,
            int(x_company_id),
            target_id=target_id,
            action=action,
            limit=limit,
            offset=offset,
        )
        return [AuditLogResponse.model_validate(r) for r in rows]
    finally:
        db.close()
