"""
HR Service - Employees and monthly salaries
"""
from typing import Optional, List, Dict
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import desc
from decimal import Decimal
from datetime import datetime
import logging

from app.core.exceptions import ValidationError, ConflictError, NotFoundError
from app.core.money import money, to_decimal
from app.models import Employee, Salary, SalaryStatus, User
from app.schemas import EmployeeCreate, EmployeeUpdate, SalaryCreate
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


def calculate_salary(
    base_salary, allowances=0, bonuses=0, overtime=0,
    tax=0, provident_fund=0, other_deductions=0,
) -> Dict[str, Decimal]:
    """Gross, total deductions and net pay"""
    gross = money(to_decimal(base_salary) + to_decimal(allowances) + to_decimal(bonuses) + to_decimal(overtime))
    deductions = money(to_decimal(tax) + to_decimal(provident_fund) + to_decimal(other_deductions))
    return {
        "gross_salary": gross,
        "total_deductions": deductions,
        "net_salary": gross - deductions,
    }


class EmployeeService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, employee_id: int) -> Optional[Employee]:
        return self.db.query(Employee).filter(Employee.id == employee_id).first()

    def _require(self, employee_id: int) -> Employee:
        employee = self.get_by_id(employee_id)
        if not employee:
            raise NotFoundError("Employee", employee_id)
        return employee

    def get_all(self, include_inactive: bool = False) -> List[Employee]:
        query = self.db.query(Employee)
        if not include_inactive:
            query = query.filter(Employee.is_active == True)
        return query.order_by(Employee.full_name).all()

    def create(self, data: EmployeeCreate) -> Employee:
        if self.db.query(Employee.id).filter(Employee.employee_code == data.employee_code).first():
            raise ConflictError(f"Employee code '{data.employee_code}' already exists")
        employee = Employee(**data.model_dump())
        self.db.add(employee)
        self.db.flush()
        return employee

    def update(self, employee_id: int, data: EmployeeUpdate) -> Employee:
        employee = self._require(employee_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(employee, key, value)
        self.db.flush()
        return employee

    def delete(self, employee_id: int) -> bool:
        """Soft delete when salary history exists. Returns True if removed."""
        employee = self._require(employee_id)
        if self.db.query(Salary.id).filter(Salary.employee_id == employee_id).first():
            employee.is_active = False
            self.db.flush()
            return False
        self.db.delete(employee)
        self.db.flush()
        return True


class SalaryService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityLogService(db)

    def get_by_id(self, salary_id: int) -> Optional[Salary]:
        return self.db.query(Salary).options(joinedload(Salary.employee)).filter(Salary.id == salary_id).first()

    def get_salaries(self, month: Optional[int] = None, year: Optional[int] = None,
                     employee_id: Optional[int] = None, status: Optional[str] = None) -> List[Salary]:
        query = self.db.query(Salary).options(joinedload(Salary.employee))
        if month:
            query = query.filter(Salary.month == month)
        if year:
            query = query.filter(Salary.year == year)
        if employee_id:
            query = query.filter(Salary.employee_id == employee_id)
        if status:
            query = query.filter(Salary.status == status)
        return query.order_by(desc(Salary.year), desc(Salary.month), Salary.id).all()

    def create(self, data: SalaryCreate, actor: User) -> Salary:
        employee = EmployeeService(self.db).get_by_id(data.employee_id)
        if not employee:
            raise NotFoundError("Employee", data.employee_id)
        if not employee.is_active:
            raise ValidationError("Cannot create a salary for an inactive employee")

        duplicate = self.db.query(Salary.id).filter(
            Salary.employee_id == employee.id,
            Salary.month == data.month,
            Salary.year == data.year,
        ).first()
        if duplicate:
            raise ConflictError(f"Salary for {employee.full_name} for {data.month:02d}/{data.year} already exists")

        base = data.base_salary if data.base_salary is not None else employee.base_salary
        figures = calculate_salary(
            base, data.allowances, data.bonuses, data.overtime,
            data.tax, data.provident_fund, data.other_deductions,
        )
        if figures["net_salary"] < 0:
            raise ValidationError("Deductions cannot exceed gross salary")

        salary = Salary(
            employee_id=employee.id,
            month=data.month,
            year=data.year,
            base_salary=money(base),
            allowances=money(data.allowances),
            bonuses=money(data.bonuses),
            overtime=money(data.overtime),
            tax=money(data.tax),
            provident_fund=money(data.provident_fund),
            other_deductions=money(data.other_deductions),
            notes=data.notes,
            status=SalaryStatus.PENDING,
            **figures,
        )
        salary.employee = employee
        self.db.add(salary)
        self.db.flush()

        self.activity.log(
            action=ActivityAction.CREATE,
            entity_type="Salary",
            entity_id=salary.id,
            entity_name=employee.full_name,
            description=f"Salary {data.month:02d}/{data.year} net {salary.net_salary}",
            user=actor,
        )
        return salary

    def pay(self, salary_id: int, payment_method: str, actor: User) -> Salary:
        salary = self.get_by_id(salary_id)
        if not salary:
            raise NotFoundError("Salary", salary_id)
        if salary.status == SalaryStatus.PAID:
            raise ConflictError("Salary is already paid")

        salary.status = SalaryStatus.PAID
        salary.paid_at = datetime.utcnow()
        salary.payment_method = payment_method
        self.db.flush()

        LedgerService(self.db).record_salary(salary, created_by=actor.id)
        self.db.flush()

        self.activity.log(
            action=ActivityAction.PAY,
            entity_type="Salary",
            entity_id=salary.id,
            entity_name=salary.employee.full_name,
            description=f"Salary {salary.month:02d}/{salary.year} paid: {salary.net_salary}",
            user=actor,
        )
        logger.info(f"Salary {salary.id} paid by user {actor.id}")
        return salary
