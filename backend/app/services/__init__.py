# Services Package
from app.services.user_service import UserService
from app.services.audit_service import ActivityLogService
from app.services.inventory_service import CategoryService, ProductService, StockService
from app.services.order_service import OrderService
from app.services.ledger_service import LedgerService
from app.services.profit_service import ProfitCalculator
from app.services.partner_service import PartnerService, DistributionService
from app.services.cost_service import OperationalCostService
from app.services.hr_service import EmployeeService, SalaryService

__all__ = [
    'UserService',
    'ActivityLogService',
    'CategoryService',
    'ProductService',
    'StockService',
    'OrderService',
    'LedgerService',
    'ProfitCalculator',
    'PartnerService',
    'DistributionService',
    'OperationalCostService',
    'EmployeeService',
    'SalaryService',
]
