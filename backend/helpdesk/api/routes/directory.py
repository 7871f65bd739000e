from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from helpdesk.api.deps import get_current_user
from helpdesk.core.sanitize import sanitize_input
from helpdesk.db.session import get_session
from helpdesk.models.directory import Company, Department, TargetSystem
from helpdesk.models.user import User

router = APIRouter(prefix="/api", tags=["directory"])


def _required_name(payload: dict) -> str:
    name = sanitize_input(payload.get("name") if isinstance(payload.get("name"), str) else "")
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    return name


def _optional_int(value, field: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid {field}")


@router.get("/companies")
def list_companies(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    companies = session.exec(select(Company).order_by(Company.name)).all()
    return [{"id": c.id, "name": c.name} for c in companies]


@router.post("/companies", status_code=201)
def create_company(payload: dict, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    company = Company(name=_required_name(payload))
    session.add(company)
    session.commit()
    session.refresh(company)
    return {"id": company.id, "name": company.name}


@router.get("/departments")
def list_departments(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    departments = session.exec(select(Department).order_by(Department.name)).all()
    return [{"id": d.id, "name": d.name, "companyId": d.company_id} for d in departments]


@router.post("/departments", status_code=201)
def create_department(payload: dict, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    name = _required_name(payload)
    company_id = _optional_int(payload.get("company_id"), "company_id")
    if company_id is not None and not session.get(Company, company_id):
        raise HTTPException(status_code=400, detail="Unknown company")

    department = Department(name=name, company_id=company_id)
    session.add(department)
    session.commit()
    session.refresh(department)
    return {"id": department.id, "name": department.name, "companyId": department.company_id}


@router.get("/target-systems")
def list_target_systems(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    department_id: Optional[int] = Query(default=None),
):
    q = select(TargetSystem).order_by(TargetSystem.name)
    if department_id is not None:
        q = q.where(TargetSystem.department_id == department_id)
    systems = session.exec(q).all()
    return [{"id": s.id, "name": s.name, "departmentId": s.department_id} for s in systems]


@router.post("/target-systems", status_code=201)
def create_target_system(payload: dict, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    name = _required_name(payload)
    department_id = _optional_int(payload.get("department_id"), "department_id")
    if department_id is None:
        raise HTTPException(status_code=400, detail="department_id is required")
    if not session.get(Department, department_id):
        raise HTTPException(status_code=400, detail="Unknown department")

    system = TargetSystem(name=name, department_id=department_id)
    session.add(system)
    session.commit()
    session.refresh(system)
    return {"id": system.id, "name": system.name, "departmentId": system.department_id}
