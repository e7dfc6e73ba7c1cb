"""
Test fixtures for the backend test suite.

Runs against an in-memory SQLite database through aiosqlite. Each test gets
its own engine and an outer transaction that is rolled back; service-level
commits only release savepoints inside it.
"""

import uuid
from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from tixledger.core.config import settings
from tixledger.core.database import get_db
from tixledger.main import create_app
from tixledger.models import Base
from tixledger.models.billing_plan import BillingPlan
from tixledger.models.tenant import Tenant
from tixledger.models.ticketing import Ticket

ADMIN_HEADERS = {"X-Admin-Key": settings.ADMIN_API_KEY}


def _enable_savepoints(sync_engine) -> None:
    # pysqlite/aiosqlite manage BEGIN themselves and break SAVEPOINT unless told not to
    @event.listens_for(sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Per-test DB session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db():
    """Provide a database session. Each test gets its own engine and a transaction that is rolled back."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_savepoints(engine.sync_engine)

    async with engine.connect() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.commit()

        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint")
        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()
    await engine.dispose()


@pytest_asyncio.fixture
async def app(db: AsyncSession):
    """Create a FastAPI app instance with the test DB session injected."""
    application = create_app()

    async def override_get_db():
        yield db

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


async def create_test_tenant(
    db: AsyncSession,
    user_id: str | None = None,
    app_id: str = "public",
    status: str = "active",
) -> Tenant:
    tenant = Tenant(
        user_id=user_id or f"producer-{uuid.uuid4().hex[:8]}",
        app_id=app_id,
        is_pro=False,
        status=status,
    )
    db.add(tenant)
    await db.flush()
    return tenant


async def create_test_plan(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    name: str = "Pro",
    price: Decimal = Decimal("999.00"),
    billing_cycle: str = "monthly",
    initial_tickets: int = 100,
    is_active: bool = True,
) -> BillingPlan:
    plan = BillingPlan(
        tenant_id=tenant_id,
        app_id="public",
        name=name,
        price=price,
        currency="INR",
        billing_cycle=billing_cycle,
        initial_tickets=initial_tickets,
        features=[],
        is_active=is_active,
        is_public=True,
        sort_order=0,
    )
    db.add(plan)
    await db.flush()
    return plan


async def create_test_ticket(db: AsyncSession, tenant: Tenant, title: str = "Opening Night") -> Ticket:
    ticket = Ticket(
        tenant_id=tenant.id,
        app_id=tenant.app_id,
        title=title,
        price=Decimal("199.00"),
        currency="INR",
        status="published",
    )
    db.add(ticket)
    await db.flush()
    return ticket


def make_caller_headers(tenant: Tenant, user_id: str | None = None) -> dict[str, str]:
    """Identity headers as set by the upstream auth gateway."""
    return {"X-Tenant-ID": str(tenant.id), "X-User-ID": user_id or tenant.user_id}


# ---------------------------------------------------------------------------
# Convenience fixtures for common test scenarios
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def system_tenant(db: AsyncSession) -> Tenant:
    tenant = Tenant(id=settings.SYSTEM_TENANT_ID, user_id="system", app_id="public", is_pro=False, status="active")
    db.add(tenant)
    await db.flush()
    return tenant


@pytest_asyncio.fixture
async def tenant_a(db: AsyncSession) -> Tenant:
    return await create_test_tenant(db, user_id="producer-a")


@pytest_asyncio.fixture
async def tenant_b(db: AsyncSession) -> Tenant:
    return await create_test_tenant(db, user_id="producer-b")


@pytest_asyncio.fixture
async def pro_plan(db: AsyncSession, system_tenant: Tenant) -> BillingPlan:
    return await create_test_plan(db, system_tenant.id, name="Pro", initial_tickets=100)


@pytest_asyncio.fixture
async def basic_plan(db: AsyncSession, system_tenant: Tenant) -> BillingPlan:
    return await create_test_plan(db, system_tenant.id, name="Basic", price=Decimal("199.00"), initial_tickets=20)


@pytest_asyncio.fixture
async def ticket_a(db: AsyncSession, tenant_a: Tenant) -> Ticket:
    return await create_test_ticket(db, tenant_a)
