from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from fieldclock.core.authorization import Role, require_role
from fieldclock.database import SessionLocal
from fieldclock.deps.auth import require_auth
from fieldclock.models.assignment import Assignment
from fieldclock.models.employee import Employee
from fieldclock.schemas.employee import EmployeeCreate, EmployeeResponse

router = APIRouter(prefix="/employees", tags=["Employees"])


def _get_employee(db, company_id: int, employee_id: int) -> Employee:
    row = (
        db.query(Employee)
        .filter(
            Employee.id == int(employee_id),
            Employee.company_id == int(company_id),
        )
        .first()
    )
    if row is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return row


@router.post("", response_model=EmployeeResponse)
def create_employee(
    payload: EmployeeCreate,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        row = Employee(
            company_id=int(request.state.company_id),
            name=payload.name,
            is_active=True,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()


@router.get("", response_model=List[EmployeeResponse])
def list_employees(
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _auth: tuple[str, int] = Depends(require_auth),
    is_active: Optional[bool] = None,
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        q = db.query(Employee).filter(Employee.company_id == int(request.state.company_id))
        if is_active is not None:
            q = q.filter(Employee.is_active.is_(bool(is_active)))
        return q.order_by(Employee.id.asc()).all()
    finally:
        db.close()


@router.get("/{employee_id}", response_model=EmployeeResponse)
def get_employee(
    employee_id: int,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _auth: tuple[str, int] = Depends(require_auth),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        return _get_employee(db, request.state.company_id, employee_id)
    finally:
        db.close()


@router.post("/{employee_id}/deactivate", response_model=EmployeeResponse)
def deactivate_employee(
    employee_id: int,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
):
    """Deactivating a worker also revokes their job assignments."""
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        row = _get_employee(db, request.state.company_id, employee_id)
        row.is_active = False
        (
            db.query(Assignment)
            .filter(
                Assignment.company_id == row.company_id,
                Assignment.employee_id == row.id,
                Assignment.is_active.is_(True),
            )
            .update({Assignment.is_active: False}, synchronize_session=False)
        )
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()
