from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from jfcase.database import get_db
from jfcase.dependencies import get_current_user, require_admin_token
from jfcase.models import Employee
from jfcase.schemas.employee import EmployeeCreate, EmployeeCreated, EmployeeResponse
from jfcase.services import workflow
from jfcase.services.auth_service import auth_service

router = APIRouter(prefix="/employees", tags=["employees"])


def _employee_to_response(employee: Employee) -> EmployeeResponse:
    return EmployeeResponse(
        asn_id=employee.asn_id,
        nip=employee.nip,
        name=employee.name,
        functional_position_id=employee.functional_position_id,
        functional_position=employee.functional_position,
        rank=employee.rank,
        organization_unit_id=employee.organization_unit_id,
        organization_unit=employee.organization_unit,
        agency_id=employee.agency_id,
        agency=employee.agency,
        roles=employee.role_list,
        created_at=employee.created_at,
    )


@router.post("", response_model=EmployeeCreated, status_code=201, dependencies=[Depends(require_admin_token)])
def create_employee(req: EmployeeCreate, db: Session = Depends(get_db)):
    existing = db.query(Employee).filter((Employee.asn_id == req.asn_id) | (Employee.nip == req.nip)).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Employee {req.asn_id} / NIP {req.nip} already exists")
    employee, token = auth_service.create_employee(db, req)
    return EmployeeCreated(employee=_employee_to_response(employee), token=token)


@router.post("/{asn_id}/token", response_model=EmployeeCreated, dependencies=[Depends(require_admin_token)])
def rotate_token(asn_id: str, db: Session = Depends(get_db)):
    employee = workflow.find_employee(db, asn_id)
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    token = auth_service.rotate_token(db, employee)
    return EmployeeCreated(employee=_employee_to_response(employee), token=token)


@router.get("/me", response_model=EmployeeResponse)
def get_me(user: Employee = Depends(get_current_user)):
    return _employee_to_response(user)
