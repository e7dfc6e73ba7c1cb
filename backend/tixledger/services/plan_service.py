"""Billing plan catalogue.

A tenant sees its own plans plus the platform catalogue owned by
settings.SYSTEM_TENANT_ID.
"""

import uuid

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from tixledger.models.billing_plan import BillingPlan
from tixledger.models.subscription import UserSubscription

logger = structlog.get_logger()

BILLING_CYCLES = ("monthly", "yearly")

_SORT_COLUMNS = {
    "sort_order": BillingPlan.sort_order,
    "name": BillingPlan.name,
    "price": BillingPlan.price,
}

_UPDATABLE_FIELDS = (
    "name", "description", "price", "currency", "billing_cycle", "initial_tickets",
    "features", "is_active", "is_public", "sort_order",
)


def _visible_to(tenant_id: uuid.UUID):
    return or_(BillingPlan.tenant_id == tenant_id, BillingPlan.tenant_id == settings.SYSTEM_TENANT_ID)


def _check_cycle(billing_cycle: str) -> None:
    if billing_cycle not in BILLING_CYCLES:
        raise InvalidStateError(f"Unsupported billing cycle '{billing_cycle}'")


async def list_plans(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    is_active: bool | None = None,
    is_public: bool | None = None,
    search: str | None = None,
    sort_by: str = "sort_order",
    sort_order: str = "asc",
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[BillingPlan], int]:
    page = max(1, page)
    page_size = max(1, min(100, page_size))
    conditions = [_visible_to(tenant_id)]
    if is_active is not None:
        conditions.append(BillingPlan.is_active.is_(is_active))
    if is_public is not None:
        conditions.append(BillingPlan.is_public.is_(is_public))
    if search:
        conditions.append(BillingPlan.name.ilike(f"%{search}%"))

    column = _SORT_COLUMNS.get(sort_by, BillingPlan.sort_order)
    ordering = column.desc() if sort_order == "desc" else column.asc()

    total = await db.scalar(select(func.count(BillingPlan.id)).where(*conditions)) or 0
    result = await db.execute(
        select(BillingPlan)
        .where(*conditions)
        .order_by(ordering)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def get_plan(db: AsyncSession, tenant_id: uuid.UUID, plan_id: uuid.UUID) -> BillingPlan:
    result = await db.execute(
        select(BillingPlan).where(BillingPlan.id == plan_id, _visible_to(tenant_id))
    )
    plan = result.scalar_one_or_none()
    if plan is None:
        raise NotFoundError(f"Billing plan {plan_id} not found")
    return plan


async def get_plan_by_name(db: AsyncSession, name: str) -> BillingPlan:
    """Case-insensitive lookup; platform plans win over tenant-owned ones."""
    result = await db.execute(
        select(BillingPlan)
        .where(func.lower(BillingPlan.name) == name.strip().lower())
        .order_by((BillingPlan.tenant_id == settings.SYSTEM_TENANT_ID).desc(), BillingPlan.created_at)
    )
    plan = result.scalars().first()
    if plan is None:
        raise NotFoundError(f"Billing plan '{name}' not found")
    return plan


async def create_plan(db: AsyncSession, tenant_id: uuid.UUID, data: dict) -> BillingPlan:
    billing_cycle = data.get("billing_cycle", "monthly")
    _check_cycle(billing_cycle)
    plan = BillingPlan(
        tenant_id=tenant_id,
        app_id=data.get("app_id", "public"),
        name=data["name"],
        description=data.get("description"),
        price=data["price"],
        currency=data.get("currency", settings.BILLING_DEFAULT_CURRENCY),
        billing_cycle=billing_cycle,
        initial_tickets=data.get("initial_tickets", 0),
        features=data.get("features") or [],
        is_active=data.get("is_active", True),
        is_public=data.get("is_public", False),
        sort_order=data.get("sort_order", 0),
    )
    db.add(plan)
    await db.flush()
    logger.info("billing.plan_created", tenant_id=str(tenant_id), plan_id=str(plan.id), name=plan.name)
    return plan


async def update_plan(db: AsyncSession, tenant_id: uuid.UUID, plan_id: uuid.UUID, data: dict) -> BillingPlan:
    plan = await _owned_plan(db, tenant_id, plan_id)
    if "billing_cycle" in data:
        _check_cycle(data["billing_cycle"])
    for key in _UPDATABLE_FIELDS:
        if key in data:
            setattr(plan, key, data[key])
    await db.flush()
    return plan


async def delete_plan(db: AsyncSession, tenant_id: uuid.UUID, plan_id: uuid.UUID) -> None:
    plan = await _owned_plan(db, tenant_id, plan_id)
    in_use = await db.scalar(select(func.count(UserSubscription.id)).where(UserSubscription.plan_id == plan_id))
    if in_use:
        raise ConflictError(f"Billing plan {plan_id} has {in_use} subscriptions; deactivate it instead")
    await db.delete(plan)
    await db.flush()
    logger.info("billing.plan_deleted", tenant_id=str(tenant_id), plan_id=str(plan_id))


async def _owned_plan(db: AsyncSession, tenant_id: uuid.UUID, plan_id: uuid.UUID) -> BillingPlan:
    # Platform plans are read-only to tenants
    result = await db.execute(
        select(BillingPlan).where(BillingPlan.id == plan_id, BillingPlan.tenant_id == tenant_id)
    )
    plan = result.scalar_one_or_none()
    if plan is None:
        raise NotFoundError(f"Billing plan {plan_id} not found")
    return plan
