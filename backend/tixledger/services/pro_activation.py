"""Best-effort Pro activation after a qualifying plan purchase.

run() never raises: the outcome comes back as CascadeOk or CascadeFailed
and is attached to the purchase result. No automatic retry; a failed
activation can be re-run through the admin endpoint.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.services import audit_service, tenant_service
from tixledger.services.tenant_service import CascadeResult

logger = structlog.get_logger()


@dataclass
class CascadeOk:
    result: CascadeResult

    success = True


@dataclass
class CascadeFailed:
    error: str
    tenant_id: uuid.UUID | None = None
    attempted_app_id: str | None = None

    success = False


CascadeOutcome = Union[CascadeOk, CascadeFailed]


async def run(db: AsyncSession, user_id: str, custom_app_id: str | None = None) -> CascadeOutcome:
    """Activate Pro for the tenant owned by `user_id` and commit it.

    The new app_id defaults to the tenant id. The caller must have committed
    everything it wants to keep: on failure this rolls the session back.
    """
    tenant_id = None
    attempted_app_id = custom_app_id
    try:
        tenant = await tenant_service.get_or_create_tenant_for_user(db, user_id)
        tenant_id = tenant.id
        attempted_app_id = custom_app_id or str(tenant_id)
        result = await tenant_service.activate_pro(db, tenant_id, attempted_app_id)
        await audit_service.log_event(
            db,
            tenant_id=tenant_id,
            category="billing",
            action="tenant.pro_activated",
            actor_id=user_id,
            resource_type="tenant",
            resource_id=str(tenant_id),
            payload={
                "old_app_id": result.old_app_id,
                "new_app_id": result.new_app_id,
                "total_rows_affected": result.total_rows_affected,
            },
        )
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.exception(
            "billing.pro_activation_failed",
            tenant_id=str(tenant_id) if tenant_id else None,
            user_id=user_id,
            attempted_app_id=attempted_app_id,
        )
        if tenant_id is not None:
            await _record_failure(db, tenant_id, user_id, attempted_app_id, exc)
        return CascadeFailed(error=str(exc), tenant_id=tenant_id, attempted_app_id=attempted_app_id)

    logger.info(
        "billing.pro_activation_succeeded",
        tenant_id=str(tenant_id),
        user_id=user_id,
        old_app_id=result.old_app_id,
        new_app_id=result.new_app_id,
        total_rows_affected=result.total_rows_affected,
    )
    return CascadeOk(result=result)


async def _record_failure(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    attempted_app_id: str | None,
    exc: Exception,
) -> None:
    try:
        await audit_service.log_event(
            db,
            tenant_id=tenant_id,
            category="billing",
            action="tenant.pro_activated",
            actor_id=user_id,
            resource_type="tenant",
            resource_id=str(tenant_id),
            payload={"attempted_app_id": attempted_app_id},
            status="failed",
            error_message=str(exc),
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("billing.pro_activation_audit_failed", tenant_id=str(tenant_id))
