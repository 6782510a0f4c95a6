"""
Roles and Permissions

Every user carries exactly one role. What a role may do is a static
mapping; nothing about access control lives in the database.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"
    MANAGER = "MANAGER"
    SELLER = "SELLER"
    BUYER = "BUYER"
    GUEST = "GUEST"

    @classmethod
    def parse(cls, value: Optional[str]) -> "UserRole":
        """Normalize a stored or client supplied role string."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.GUEST
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown role: {value}")


ROLE_HIERARCHY: Dict[UserRole, int] = {
    UserRole.SUPER_ADMIN: 5,
    UserRole.ADMIN: 4,
    UserRole.PARTNER: 3,
    UserRole.MANAGER: 2,
    UserRole.SELLER: 2,
    UserRole.BUYER: 1,
    UserRole.GUEST: 0,
}


class Permission(str, Enum):
    # Dashboard
    DASHBOARD_VIEW = "dashboard:view"

    # Profit & finance
    PROFIT_VIEW = "profit:view"
    PROFIT_MANAGE = "profit:manage"
    LEDGER_VIEW = "ledger:view"
    LEDGER_MANAGE = "ledger:manage"
    LEDGER_RECONCILE = "ledger:reconcile"

    # Operational costs
    COSTS_VIEW = "costs:view"
    COSTS_MANAGE = "costs:manage"
    COSTS_APPROVE = "costs:approve"

    # Partners
    PARTNERS_VIEW = "partners:view"
    PARTNERS_MANAGE = "partners:manage"
    PARTNER_PERCENTAGE_EDIT = "partners:percentage_edit"
    PARTNER_PERCENTAGE_OVERRIDE = "partners:percentage_override"
    PROFIT_DISTRIBUTION_VIEW = "distribution:view"
    PROFIT_DISTRIBUTION_MANAGE = "distribution:manage"
    OWN_DISTRIBUTIONS_VIEW = "distribution:view_own"

    # Catalog
    PRODUCTS_VIEW = "products:view"
    PRODUCTS_MANAGE = "products:manage"
    PRODUCTS_DELETE = "products:delete"
    CATEGORIES_MANAGE = "categories:manage"

    # Orders
    ORDERS_PLACE = "orders:place"
    ORDERS_VIEW_ALL = "orders:view_all"
    ORDERS_MANAGE = "orders:manage"
    ORDERS_CANCEL = "orders:cancel"

    # Inventory
    INVENTORY_VIEW = "inventory:view"
    INVENTORY_MANAGE = "inventory:manage"

    # HR
    EMPLOYEES_VIEW = "employees:view"
    EMPLOYEES_MANAGE = "employees:manage"
    SALARIES_VIEW = "salaries:view"
    SALARIES_MANAGE = "salaries:manage"

    # Users
    USERS_VIEW = "users:view"
    USERS_MANAGE = "users:manage"
    USERS_ROLES_EDIT = "users:roles_edit"
    CUSTOMER_DISCOUNT_MANAGE = "users:discount_manage"

    # Reviews
    REVIEWS_MANAGE = "reviews:manage"

    # Audit
    ACTIVITY_LOGS_VIEW = "activity_logs:view"


_ALL = frozenset(Permission)

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.SUPER_ADMIN: _ALL,
    UserRole.ADMIN: _ALL - {Permission.PARTNER_PERCENTAGE_OVERRIDE},
    UserRole.PARTNER: frozenset({
        Permission.DASHBOARD_VIEW,
        Permission.PROFIT_VIEW,
        Permission.LEDGER_VIEW,
        Permission.COSTS_VIEW,
        Permission.PARTNERS_VIEW,
        Permission.PROFIT_DISTRIBUTION_VIEW,
        Permission.OWN_DISTRIBUTIONS_VIEW,
        Permission.PRODUCTS_VIEW,
        Permission.ORDERS_PLACE,
        Permission.ORDERS_VIEW_ALL,
        Permission.INVENTORY_VIEW,
    }),
    UserRole.MANAGER: frozenset({
        Permission.DASHBOARD_VIEW,
        Permission.COSTS_VIEW,
        Permission.COSTS_MANAGE,
        Permission.PRODUCTS_VIEW,
        Permission.PRODUCTS_MANAGE,
        Permission.CATEGORIES_MANAGE,
        Permission.ORDERS_PLACE,
        Permission.ORDERS_VIEW_ALL,
        Permission.ORDERS_MANAGE,
        Permission.ORDERS_CANCEL,
        Permission.INVENTORY_VIEW,
        Permission.INVENTORY_MANAGE,
        Permission.EMPLOYEES_VIEW,
        Permission.SALARIES_VIEW,
    }),
    UserRole.SELLER: frozenset({
        Permission.DASHBOARD_VIEW,
        Permission.PRODUCTS_VIEW,
        Permission.PRODUCTS_MANAGE,
        Permission.ORDERS_PLACE,
        Permission.ORDERS_VIEW_ALL,
        Permission.ORDERS_MANAGE,
        Permission.INVENTORY_VIEW,
    }),
    UserRole.BUYER: frozenset({
        Permission.PRODUCTS_VIEW,
        Permission.ORDERS_PLACE,
    }),
    UserRole.GUEST: frozenset({
        Permission.PRODUCTS_VIEW,
    }),
}


def get_permissions(role) -> FrozenSet[Permission]:
    return ROLE_PERMISSIONS.get(UserRole.parse(role), frozenset())


def has_permission(role, permission: Permission) -> bool:
    return permission in get_permissions(role)


def can_override_share_limit(role) -> bool:
    """Only holders of the override may push active partner shares past 100%."""
    return has_permission(role, Permission.PARTNER_PERCENTAGE_OVERRIDE)


def is_admin(role) -> bool:
    return UserRole.parse(role) in (UserRole.SUPER_ADMIN, UserRole.ADMIN)


def outranks(actor_role, target_role) -> bool:
    return ROLE_HIERARCHY[UserRole.parse(actor_role)] > ROLE_HIERARCHY[UserRole.parse(target_role)]
