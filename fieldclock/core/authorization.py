from enum import Enum

from fastapi import Depends, HTTPException, Request

from fieldclock.deps.auth import require_auth


class Role(Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


RANK = {
    Role.EMPLOYEE: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}


def current_role(request: Request) -> Role:
    claim_role = getattr(request.state, "role", None) or Role.EMPLOYEE.value
    try:
        return Role(str(claim_role).upper())
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid role claim") from exc


def has_role(user_role: Role, role: Role) -> bool:
    return RANK[user_role] >= RANK[role]


def require_role(role: Role):
    def dependency(request: Request, _auth: tuple[str, int] = Depends(require_auth)):
        user_role = current_role(request)

        if not has_role(user_role, role):
            raise HTTPException(status_code=403, detail="Insufficient role")

        request.state.role = user_role.value
        return user_role

    return dependency
