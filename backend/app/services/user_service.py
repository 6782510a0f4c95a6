"""
User Service - Business Logic for User Operations
"""
from typing import Optional, List, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from datetime import datetime
import logging

from app.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, AuthenticationError
from app.core.money import money
from app.core.roles import UserRole, outranks
from app.core.security import get_password_hash, verify_password
from app.models import User
from app.schemas import RegisterRequest, CustomerDiscountUpdate
from app.services.audit_service import ActivityLogService, ActivityAction

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(func.lower(User.email) == email.lower()).first()

    def get_users(self, role: Optional[str] = None, q: Optional[str] = None,
                  page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == UserRole.parse(role).value)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter((User.name.ilike(pattern)) | (User.email.ilike(pattern)))
        total = query.count()
        users = query.order_by(desc(User.created_at), desc(User.id)).offset((page - 1) * limit).limit(limit).all()
        return users, total

    def create_user(self, name: str, email: str, password: str, role: UserRole = UserRole.BUYER, **extra) -> User:
        if self.get_by_email(email):
            raise ConflictError("Email already registered")
        user = User(
            name=name,
            email=email.lower(),
            hashed_password=get_password_hash(password),
            role=UserRole.parse(role).value,
            **extra,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def register(self, data: RegisterRequest) -> User:
        user = self.create_user(
            name=data.name,
            email=data.email,
            password=data.password,
            role=UserRole.BUYER,
            mobile=data.mobile,
            business_name=data.business_name,
            business_type=data.business_type,
        )
        ActivityLogService(self.db).log(
            action=ActivityAction.CREATE, entity_type="User", entity_id=user.id,
            entity_name=user.email, description="Account registered", user=user,
        )
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.get_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for {email}")
            raise AuthenticationError("Incorrect email or password")
        if not user.is_active:
            raise PermissionDeniedError("User account is disabled")
        user.last_login_at = datetime.utcnow()
        self.db.flush()
        return user

    def _require(self, user_id: int) -> User:
        user = self.get_by_id(user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def change_role(self, user_id: int, role: str, actor: User) -> User:
        target = self._require(user_id)
        new_role = UserRole.parse(role)

        if target.id == actor.id:
            raise PermissionDeniedError("You cannot change your own role")
        actor_role = UserRole.parse(actor.role)
        # Below super admin, the actor must outrank both the current and the requested role
        if actor_role != UserRole.SUPER_ADMIN and (
            not outranks(actor_role, target.role) or not outranks(actor_role, new_role)
        ):
            raise PermissionDeniedError(f"You cannot assign the {new_role.value} role")

        old_role = target.role
        target.role = new_role.value
        self.db.flush()

        ActivityLogService(self.db).log(
            action=ActivityAction.UPDATE, entity_type="User", entity_id=target.id,
            entity_name=target.email, description=f"Role changed from {old_role} to {new_role.value}",
            user=actor,
        )
        return target

    def set_active(self, user_id: int, is_active: bool, actor: User) -> User:
        target = self._require(user_id)
        if target.id == actor.id:
            raise PermissionDeniedError("You cannot change your own account status")
        if not outranks(actor.role, target.role):
            raise PermissionDeniedError("You cannot change the status of this user")

        target.is_active = is_active
        self.db.flush()

        ActivityLogService(self.db).log(
            action=ActivityAction.STATUS_CHANGE, entity_type="User", entity_id=target.id,
            entity_name=target.email, description="Account enabled" if is_active else "Account disabled",
            user=actor,
        )
        return target

    def set_discount(self, user_id: int, data: CustomerDiscountUpdate, actor: User) -> User:
        """A zero percentage removes the discount"""
        customer = self._require(user_id)
        customer.discount_percentage = money(data.discount_percentage)
        customer.discount_reason = data.discount_reason
        customer.discount_valid_until = data.discount_valid_until
        self.db.flush()

        ActivityLogService(self.db).log(
            action=ActivityAction.UPDATE, entity_type="CustomerDiscount", entity_id=customer.id,
            entity_name=customer.name,
            description=f"Customer discount set to {customer.discount_percentage}% for {customer.name}",
            metadata={
                "discount_percentage": customer.discount_percentage,
                "reason": data.discount_reason,
                "valid_until": data.discount_valid_until,
            },
            user=actor,
        )
        logger.info(f"Discount for user {customer.id} set to {customer.discount_percentage}% by user {actor.id}")
        return customer

    def ensure_bootstrap_admin(self, email: str, password: str) -> Optional[User]:
        """Create the first super admin if nobody holds that role yet"""
        if self.db.query(User.id).filter(User.role == UserRole.SUPER_ADMIN.value).first():
            return None
        existing = self.get_by_email(email)
        if existing:
            existing.role = UserRole.SUPER_ADMIN.value
            self.db.flush()
            return existing
        user = self.create_user(name="Administrator", email=email, password=password, role=UserRole.SUPER_ADMIN)
        logger.info(f"Bootstrap super admin created: {email}")
        return user
