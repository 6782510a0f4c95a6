"""
Centralized Test Configuration.

One in-memory SQLite database shared through a StaticPool, rebuilt for
every test. The app's get_db dependency is pointed at it.
"""
import os

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"

from datetime import datetime
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.database import get_db, Base
from app.core.roles import UserRole
from app.core.security import create_user_token
from app.models import (
    Product, Order, OrderItem, OrderStatus, FinancialLedger, LedgerSource, LedgerDirection
)
from app.services.user_service import UserService

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# ==================== USERS ====================

def make_user(db, role: UserRole, email: str, name: str = None):
    user = UserService(db).create_user(
        name=name or role.value.title(),
        email=email,
        password="password123",
        role=role,
    )
    db.commit()
    db.refresh(user)
    return user


def auth_header(user) -> dict:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
def super_admin(db_session):
    return make_user(db_session, UserRole.SUPER_ADMIN, "root@example.com", "Root")


@pytest.fixture
def admin(db_session):
    return make_user(db_session, UserRole.ADMIN, "admin@example.com", "Admin")


@pytest.fixture
def manager(db_session):
    return make_user(db_session, UserRole.MANAGER, "manager@example.com", "Manager")


@pytest.fixture
def buyer(db_session):
    return make_user(db_session, UserRole.BUYER, "buyer@example.com", "Buyer")


@pytest.fixture
def super_admin_headers(super_admin):
    return auth_header(super_admin)


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


@pytest.fixture
def manager_headers(manager):
    return auth_header(manager)


@pytest.fixture
def buyer_headers(buyer):
    return auth_header(buyer)


# ==================== DATA ====================

@pytest.fixture
def product(db_session):
    item = Product(
        name="Cotton T-Shirt",
        sku="TS-001",
        base_price=Decimal("10.00"),
        wholesale_price=Decimal("8.00"),
        cost_price=Decimal("4.00"),
        moq=10,
        stock_quantity=100,
        reorder_level=20,
        reorder_quantity=50,
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


def make_delivered_order(db, total: Decimal, total_cost: Decimal, with_ledger: bool = True) -> Order:
    """A delivered order posted straight to the database, optionally with its ledger pair"""
    now = datetime.utcnow()
    order = Order(
        order_number=f"ORD-TEST-{now:%H%M%S%f}",
        guest_name="Walk-in",
        guest_mobile="01700000000",
        status=OrderStatus.DELIVERED,
        shipping_address="12 Test Street",
        subtotal=total,
        tax=Decimal("0"),
        shipping_fee=Decimal("0"),
        total=total,
        total_cost=total_cost,
        gross_profit=total - total_cost,
        completed_at=now,
    )
    order.items.append(OrderItem(
        product_name="Bulk lot",
        quantity=1,
        unit_price=total,
        total_price=total,
        total_cost=total_cost,
    ))
    db.add(order)
    db.flush()

    if with_ledger:
        for direction, amount, category in (
            (LedgerDirection.CREDIT, total, "REVENUE"),
            (LedgerDirection.DEBIT, total_cost, "COGS"),
        ):
            db.add(FinancialLedger(
                source_type=LedgerSource.ORDER,
                source_id=str(order.id),
                amount=amount,
                direction=direction,
                category=category,
                order_id=order.id,
                fiscal_year=now.year,
                fiscal_month=now.month,
                transaction_date=now,
            ))
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture
def delivered_order(db_session):
    def factory(total: str, total_cost: str, with_ledger: bool = True) -> Order:
        return make_delivered_order(db_session, Decimal(total), Decimal(total_cost), with_ledger)
    return factory
