"""
EduPay - Test Configuration

Pytest fixtures and configuration.

Tests run against an in-memory SQLite database through aiosqlite unless
TEST_DATABASE_URL points somewhere else (e.g. a PostgreSQL test database).
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault(
    "DATABASE_URL_ASYNC",
    os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"),
)

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_async_session
from app.models.tenant import Tenant
from app.models.user import User, UserRole
from app.models.advance_salary import AdvanceSalary, AdvanceStatus, DeductionStatus
from app.utils.security import create_access_token
from main import app


TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _create_test_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

        # Let SQLAlchemy own BEGIN so SAVEPOINTs behave as on PostgreSQL
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_async_engine(TEST_DATABASE_URL, echo=False, pool_pre_ping=True)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test and a session on it."""
    engine = _create_test_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def test_tenant(db_session: AsyncSession) -> Tenant:
    """Create a test school."""
    tenant = Tenant(id=uuid4(), name="Greenfield High School", code="GHS-01")
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest_asyncio.fixture
async def other_tenant(db_session: AsyncSession) -> Tenant:
    """A second school whose data must never leak into the first."""
    tenant = Tenant(id=uuid4(), name="Riverside Academy", code="RVA-01")
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession, test_tenant: Tenant) -> User:
    """School administrator. Carries no salary, so is never paid."""
    user = User(
        id=uuid4(),
        tenant_id=test_tenant.id,
        name="Ada Admin",
        email="admin@greenfield.edu",
        employee_code="ADM-001",
        role=UserRole.ADMIN,
        is_active=True,
        salary=None,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def make_employee(db_session: AsyncSession, test_tenant: Tenant):
    """Factory for users of the test school."""

    async def _make(
        name: str,
        salary: Optional[Decimal] = Decimal("1000.00"),
        role: UserRole = UserRole.TEACHER,
        is_active: bool = True,
        employee_code: Optional[str] = None,
        tenant: Optional[Tenant] = None,
    ) -> User:
        user = User(
            id=uuid4(),
            tenant_id=(tenant or test_tenant).id,
            name=name,
            email=f"{name.lower().replace(' ', '.')}@school.edu",
            employee_code=employee_code or f"EMP-{uuid4().hex[:6].upper()}",
            role=role,
            is_active=is_active,
            salary=salary,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_advance(db_session: AsyncSession):
    """Factory for salary advances; approved by default."""

    async def _make(
        employee: User,
        amount: Decimal,
        request_date: date,
        status: AdvanceStatus = AdvanceStatus.APPROVED,
    ) -> AdvanceSalary:
        advance = AdvanceSalary(
            id=uuid4(),
            tenant_id=employee.tenant_id,
            employee_id=employee.id,
            amount=amount,
            reason="School fees",
            request_date=request_date,
            status=status,
            deduction_status=DeductionStatus.PENDING,
            amount_deducted=Decimal("0.00"),
            remaining_amount=amount,
        )
        db_session.add(advance)
        await db_session.commit()
        return advance

    return _make


@pytest_asyncio.fixture
async def teacher(make_employee) -> User:
    """A salaried teacher."""
    return await make_employee("Tunde Teacher", salary=Decimal("1000.00"), employee_code="TCH-001")


@pytest_asyncio.fixture
async def auth_headers(admin_user: User) -> dict:
    """Generate authorization headers for the school administrator."""
    token = create_access_token(data={"sub": str(admin_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def teacher_headers(teacher: User) -> dict:
    """Authorization headers for a non-admin staff member."""
    token = create_access_token(data={"sub": str(teacher.id)})
    return {"Authorization": f"Bearer {token}"}
