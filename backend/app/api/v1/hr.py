"""
HR API Routes - Employees and monthly salaries
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.api.deps import success, serialize
from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.core.roles import Permission
from app.core.security import PermissionChecker
from app.schemas import (
    EmployeeCreate, EmployeeUpdate, EmployeeResponse,
    SalaryCreate, SalaryPayRequest, SalaryResponse
)
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.hr_service import EmployeeService, SalaryService

router = APIRouter(prefix="/admin", tags=["HR"])


# ==================== EMPLOYEES ====================

@router.get("/employees")
async def list_employees(
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.EMPLOYEES_VIEW]))
):
    return success(serialize(EmployeeResponse, EmployeeService(db).get_all(include_inactive)))


@router.post("/employees", status_code=201)
async def create_employee(
    data: EmployeeCreate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.EMPLOYEES_MANAGE]))
):
    employee = EmployeeService(db).create(data)
    ActivityLogService(db).log(
        action=ActivityAction.CREATE,
        entity_type="Employee",
        entity_id=employee.id,
        entity_name=employee.full_name,
        description=f"Employee {employee.employee_code} added",
        user=current_user,
    )
    db.commit()
    db.refresh(employee)
    return success(EmployeeResponse.model_validate(employee), message="Employee created successfully")


@router.get("/employees/{employee_id}")
async def get_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.EMPLOYEES_VIEW]))
):
    employee = EmployeeService(db).get_by_id(employee_id)
    if not employee:
        raise NotFoundError("Employee", employee_id)
    return success(EmployeeResponse.model_validate(employee))


@router.put("/employees/{employee_id}")
async def update_employee(
    employee_id: int,
    data: EmployeeUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.EMPLOYEES_MANAGE]))
):
    employee = EmployeeService(db).update(employee_id, data)
    ActivityLogService(db).log(
        action=ActivityAction.UPDATE,
        entity_type="Employee",
        entity_id=employee.id,
        entity_name=employee.full_name,
        description="Employee updated",
        metadata={"fields": sorted(data.model_dump(exclude_unset=True))},
        user=current_user,
    )
    db.commit()
    db.refresh(employee)
    return success(EmployeeResponse.model_validate(employee))


@router.delete("/employees/{employee_id}")
async def delete_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.EMPLOYEES_MANAGE]))
):
    """Remove an employee, or deactivate one that has salary history"""
    deleted = EmployeeService(db).delete(employee_id)
    ActivityLogService(db).log(
        action=ActivityAction.DELETE,
        entity_type="Employee",
        entity_id=employee_id,
        description="Employee deleted" if deleted else "Employee deactivated (has salary history)",
        user=current_user,
    )
    db.commit()
    return success(
        {"deleted": deleted},
        message="Employee deleted successfully" if deleted else "Employee deactivated",
    )


# ==================== SALARIES ====================

@router.get("/salaries")
async def list_salaries(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = None,
    employee_id: Optional[int] = Query(None, alias="employeeId"),
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.SALARIES_VIEW]))
):
    salaries = SalaryService(db).get_salaries(month=month, year=year, employee_id=employee_id, status=status)
    total_net = sum(float(s.net_salary) for s in salaries)
    return success(serialize(SalaryResponse, salaries), summary={"count": len(salaries), "total_net": round(total_net, 2)})


@router.post("/salaries", status_code=201)
async def create_salary(
    data: SalaryCreate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.SALARIES_MANAGE]))
):
    """Compute gross, deductions and net for an employee's month"""
    salary = SalaryService(db).create(data, current_user)
    db.commit()
    db.refresh(salary)
    return success(SalaryResponse.model_validate(salary), message="Salary created successfully")


@router.post("/salaries/{salary_id}/pay")
async def pay_salary(
    salary_id: int,
    data: Optional[SalaryPayRequest] = None,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.SALARIES_MANAGE]))
):
    """Mark a salary paid and post it to the ledger"""
    payment_method = (data or SalaryPayRequest()).payment_method
    salary = SalaryService(db).pay(salary_id, payment_method, current_user)
    db.commit()
    db.refresh(salary)
    return success(SalaryResponse.model_validate(salary), message="Salary paid successfully")
