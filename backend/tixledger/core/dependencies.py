import hmac
import uuid
from dataclasses import dataclass
from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.core.database import get_db
from tixledger.models.tenant import Tenant

logger = structlog.get_logger()


@dataclass
class CallerContext:
    """Identity of the caller as asserted by the upstream auth gateway."""

    tenant_id: uuid.UUID
    user_id: str
    app_id: str


async def get_caller(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    x_tenant_id: Annotated[uuid.UUID, Header()],
    x_user_id: Annotated[str, Header(min_length=1, max_length=255)],
) -> CallerContext:
    result = await db.execute(select(Tenant).where(Tenant.id == x_tenant_id))
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown tenant")
    if tenant.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant is deactivated")

    # Bind structured logging context
    structlog.contextvars.bind_contextvars(tenant_id=str(tenant.id), user_id=x_user_id)

    caller = CallerContext(tenant_id=tenant.id, user_id=x_user_id, app_id=tenant.app_id)
    request.state.caller = caller
    return caller


async def require_admin(x_admin_key: Annotated[str | None, Header()] = None) -> None:
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("admin_key_rejected")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin key required")
    structlog.contextvars.bind_contextvars(actor_type="admin")


def require_entitlement(feature: str):
    async def entitlement_checker(
        caller: Annotated[CallerContext, Depends(get_caller)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> CallerContext:
        from tixledger.services.entitlement_service import get_user_plan_tier, has_feature_access

        tier = await get_user_plan_tier(db, caller.tenant_id, caller.user_id)
        if not has_feature_access(tier, feature):
            logger.warning("entitlement_denied", feature=feature, tier=tier)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Feature '{feature}' not available on your current plan",
            )
        return caller

    return entitlement_checker
