import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings

logger = structlog.get_logger()

FREE = "free"
PRO = "pro"
PREMIUM = "premium"

PLAN_HIERARCHY = {FREE: 0, PRO: 1, PREMIUM: 2}

PLAN_LIMITS = {
    FREE: {
        "max_live_events": 1,
        "custom_domain": False,
        "dedicated_app": False,
        "sales_reports": False,
        "coupons": False,
    },
    PRO: {
        "max_live_events": 25,
        "custom_domain": True,
        "dedicated_app": True,
        "sales_reports": True,
        "coupons": True,
    },
    PREMIUM: {
        "max_live_events": -1,
        "custom_domain": True,
        "dedicated_app": True,
        "sales_reports": True,
        "coupons": True,
    },
}


def get_plan_tier(plan_name: str | None) -> str:
    """Classify a plan by its (case-insensitive, trimmed) name."""
    if not plan_name:
        return FREE
    return settings.PLAN_TIERS.get(plan_name.strip().lower(), FREE)


def meets_tier(current: str, required: str) -> bool:
    return PLAN_HIERARCHY.get(current, 0) >= PLAN_HIERARCHY.get(required, 0)


def qualifies_for_pro_activation(plan_name: str | None) -> bool:
    return get_plan_tier(plan_name) in settings.PRO_ACTIVATION_TIERS


def has_feature_access(tier: str, feature: str) -> bool:
    limits = PLAN_LIMITS.get(tier, PLAN_LIMITS[FREE])
    value = limits.get(feature)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return value != 0


def get_plan_limits(tier: str) -> dict:
    return PLAN_LIMITS.get(tier, PLAN_LIMITS[FREE])


async def get_user_plan_tier(db: AsyncSession, tenant_id: uuid.UUID, user_id: str) -> str:
    """Tier of the user's active subscription, or free."""
    from tixledger.services import subscription_service

    subscription = await subscription_service.get_subscription(db, tenant_id, user_id)
    if subscription is None:
        return FREE
    return get_plan_tier(subscription.plan.name)
