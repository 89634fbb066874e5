from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from fieldclock.core.authorization import Role, require_role
from fieldclock.database import SessionLocal
from fieldclock.deps.auth import require_auth
from fieldclock.models.assignment import Assignment
from fieldclock.models.employee import Employee
from fieldclock.models.job import Job
from fieldclock.schemas.assignment import AssignmentCreate, AssignmentResponse

router = APIRouter(prefix="/assignments", tags=["Assignments"])


@router.post("", response_model=AssignmentResponse)
def create_assignment(
    payload: AssignmentCreate,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    company_id = int(request.state.company_id)

    db = SessionLocal()
    try:
        employee = (
            db.query(Employee)
            .filter(Employee.id == int(payload.employee_id), Employee.company_id == company_id)
            .first()
        )
        if employee is None:
            raise HTTPException(status_code=404, detail="Employee not found")

        job = db.query(Job).filter(Job.id == int(payload.job_id), Job.company_id == company_id).first()
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")

        row = Assignment(
            company_id=company_id,
            employee_id=employee.id,
            job_id=job.id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            is_active=True,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()


@router.get("", response_model=List[AssignmentResponse])
def list_assignments(
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _auth: tuple[str, int] = Depends(require_auth),
    employee_id: Optional[int] = None,
    job_id: Optional[int] = None,
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        q = db.query(Assignment).filter(Assignment.company_id == int(request.state.company_id))
        if employee_id is not None:
            q = q.filter(Assignment.employee_id == int(employee_id))
        if job_id is not None:
            q = q.filter(Assignment.job_id == int(job_id))
        return q.order_by(Assignment.id.asc()).all()
    finally:
        db.close()


@router.delete("/{assignment_id}", response_model=AssignmentResponse)
def deactivate_assignment(
    assignment_id: int,
    request: Request,
    x_company_id: int = Header(..., alias="X-Company-Id"),
    _role: Role = Depends(require_role(Role.MANAGER)),
):
    if int(x_company_id) != int(request.state.company_id):
        raise HTTPException(status_code=403, detail="Company mismatch")

    db = SessionLocal()
    try:
        row = (
            db.query(Assignment)
            .filter(
                Assignment.id == int(assignment_id),
                Assignment.company_id == int(request.state.company_id),
            )
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail="Assignment not found")
        row.is_active = False
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()
