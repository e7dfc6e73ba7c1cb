"""Tenants and the Pro activation app_id rewrite."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.exceptions import NotFoundError
from tixledger.models.base import AppScopedMixin, Base
from tixledger.models.tenant import Tenant

logger = structlog.get_logger()

DEFAULT_APP_ID = "public"


@dataclass
class TableUpdate:
    table_name: str
    rows_affected: int


@dataclass
class CascadeResult:
    success: bool
    old_app_id: str
    new_app_id: str
    tables_updated: list[TableUpdate] = field(default_factory=list)

    @property
    def total_rows_affected(self) -> int:
        return sum(t.rows_affected for t in self.tables_updated)


def tenant_scoped_models() -> list[type]:
    """Every mapped class carrying both app_id and tenant_id, sorted by table name."""
    models = [
        mapper.class_
        for mapper in Base.registry.mappers
        if issubclass(mapper.class_, AppScopedMixin) and "tenant_id" in mapper.columns
    ]
    return sorted(models, key=lambda m: m.__tablename__)


async def get_tenant_by_id(db: AsyncSession, tenant_id: uuid.UUID, lock: bool = False) -> Tenant:
    stmt = select(Tenant).where(Tenant.id == tenant_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise NotFoundError(f"Tenant {tenant_id} not found")
    return tenant


async def get_or_create_tenant_for_user(db: AsyncSession, user_id: str) -> Tenant:
    result = await db.execute(select(Tenant).where(Tenant.user_id == user_id))
    tenant = result.scalar_one_or_none()
    if tenant:
        return tenant

    tenant = Tenant(user_id=user_id, app_id=DEFAULT_APP_ID, is_pro=False, status="active")
    try:
        async with db.begin_nested():
            db.add(tenant)
    except IntegrityError:
        result = await db.execute(select(Tenant).where(Tenant.user_id == user_id))
        return result.scalar_one()

    logger.info("tenant.created", tenant_id=str(tenant.id), user_id=user_id)
    return tenant


async def activate_pro(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    custom_app_id: str | None = None,
) -> CascadeResult:
    """Mark the tenant Pro and move its rows from the old app_id to the new one.

    The new app_id is `custom_app_id` or the tenant id. Every table is
    rewritten in the caller's transaction; any failure propagates and the
    whole rewrite rolls back. Running it again for a tenant already Pro on
    the same app_id changes nothing.
    """
    tenant = await get_tenant_by_id(db, tenant_id, lock=True)
    old_app_id = tenant.app_id
    new_app_id = custom_app_id or str(tenant_id)

    if tenant.is_pro and old_app_id == new_app_id:
        logger.info("tenant.pro_already_active", tenant_id=str(tenant_id), app_id=new_app_id)
        return CascadeResult(success=True, old_app_id=old_app_id, new_app_id=new_app_id)

    logger.info("tenant.pro_activation_started", tenant_id=str(tenant_id), old_app_id=old_app_id, new_app_id=new_app_id)

    tenant.is_pro = True
    tenant.app_id = new_app_id
    tenant.pro_activated_at = datetime.now(timezone.utc)
    await db.flush()

    tables_updated = []
    if old_app_id != new_app_id:
        for model in tenant_scoped_models():
            result = await db.execute(
                update(model)
                .where(model.tenant_id == tenant_id, model.app_id == old_app_id)
                .values(app_id=new_app_id)
                .execution_options(synchronize_session="evaluate")
            )
            tables_updated.append(TableUpdate(table_name=model.__tablename__, rows_affected=result.rowcount or 0))

    cascade = CascadeResult(
        success=True, old_app_id=old_app_id, new_app_id=new_app_id, tables_updated=tables_updated
    )
    logger.info(
        "tenant.pro_activation_completed",
        tenant_id=str(tenant_id),
        total_rows_affected=cascade.total_rows_affected,
    )
    return cascade
