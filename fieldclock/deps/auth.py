from typing import Optional, Tuple

from fastapi import HTTPException, Request

from fieldclock.services.auth_service import verify_token


def _parse_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    return parts[1].strip()


def _claims(request: Request) -> dict:
    token = _parse_bearer_token(request)
    try:
        return verify_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def require_auth(request: Request) -> Tuple[str, int]:
    claims = _claims(request)

    user_id = str(claims.get("sub"))
    try:
        token_company_id = int(claims.get("company_id"))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid token claims") from exc

    header_company_id = request.headers.get("X-Company-Id")
    if header_company_id is None:
        raise HTTPException(status_code=403, detail="Missing X-Company-Id header")

    try:
        header_company_id_int = int(header_company_id)
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid X-Company-Id header") from exc

    if header_company_id_int != token_company_id:
        raise HTTPException(status_code=403, detail="Company mismatch")

    employee_id: Optional[int] = None
    if claims.get("employee_id") is not None:
        try:
            employee_id = int(claims["employee_id"])
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=401, detail="Invalid token claims") from exc

    request.state.user_id = user_id
    request.state.company_id = token_company_id
    request.state.employee_id = employee_id
    request.state.role = str(claims.get("role") or "EMPLOYEE").upper()

    return user_id, token_company_id


def require_employee(request: Request) -> int:
    """Clock operations act on the caller's own employee record."""
    require_auth(request)
    employee_id = request.state.employee_id
    if employee_id is None:
        raise HTTPException(status_code=403, detail="Token has no employee_id claim")
    return employee_id
