"""Platform-level coupon codes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from tixledger.models.coupon import CouponCode

logger = structlog.get_logger()

DISCOUNT_TYPES = ("percentage", "fixed")


@dataclass
class CouponValidation:
    valid: bool
    coupon: CouponCode | None = None
    discount_amount: Decimal = Decimal("0")
    error: str | None = None


def _normalise(code: str) -> str:
    return code.strip().upper()


def _aware(moment: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def compute_discount(coupon: CouponCode, purchase_amount: Decimal) -> Decimal:
    if coupon.discount_type == "percentage":
        discount = purchase_amount * coupon.discount_value / Decimal("100")
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
    else:
        discount = coupon.discount_value
    discount = min(discount, purchase_amount)
    return discount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


async def get_coupon(db: AsyncSession, tenant_id: uuid.UUID, code: str) -> CouponCode | None:
    result = await db.execute(
        select(CouponCode).where(CouponCode.tenant_id == tenant_id, CouponCode.code == _normalise(code))
    )
    return result.scalar_one_or_none()


async def create_coupon(db: AsyncSession, tenant_id: uuid.UUID, data: dict) -> CouponCode:
    if data["discount_type"] not in DISCOUNT_TYPES:
        raise InvalidStateError(f"Unsupported discount type '{data['discount_type']}'")
    coupon = CouponCode(
        tenant_id=tenant_id,
        app_id=data.get("app_id", "public"),
        code=_normalise(data["code"]),
        discount_type=data["discount_type"],
        discount_value=data["discount_value"],
        max_discount=data.get("max_discount"),
        min_purchase=data.get("min_purchase"),
        usage_limit=data.get("usage_limit"),
        used_count=0,
        valid_from=data.get("valid_from"),
        valid_until=data.get("valid_until"),
        is_active=data.get("is_active", True),
    )
    try:
        async with db.begin_nested():
            db.add(coupon)
    except IntegrityError:
        raise ConflictError(f"Coupon code '{coupon.code}' already exists") from None
    logger.info("billing.coupon_created", tenant_id=str(tenant_id), code=coupon.code)
    return coupon


async def list_coupons(db: AsyncSession, tenant_id: uuid.UUID, active_only: bool = False) -> list[CouponCode]:
    stmt = select(CouponCode).where(CouponCode.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(CouponCode.is_active.is_(True))
    result = await db.execute(stmt.order_by(CouponCode.created_at.desc()))
    return list(result.scalars().all())


async def validate_coupon(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    code: str,
    purchase_amount: Decimal,
    now: datetime | None = None,
) -> CouponValidation:
    """Check a code against a purchase amount. Never raises for a bad code."""
    coupon = await get_coupon(db, tenant_id, code)
    if coupon is None:
        return CouponValidation(valid=False, error="Coupon not found")
    if not coupon.is_active:
        return CouponValidation(valid=False, error="Coupon is not active")

    now = now or datetime.now(timezone.utc)
    if coupon.valid_from and _aware(coupon.valid_from) > now:
        return CouponValidation(valid=False, error="Coupon is not yet valid")
    if coupon.valid_until and _aware(coupon.valid_until) < now:
        return CouponValidation(valid=False, error="Coupon has expired")
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return CouponValidation(valid=False, error="Coupon usage limit reached")
    if coupon.min_purchase is not None and purchase_amount < coupon.min_purchase:
        return CouponValidation(
            valid=False, error=f"Minimum purchase amount of {coupon.min_purchase} required"
        )

    return CouponValidation(valid=True, coupon=coupon, discount_amount=compute_discount(coupon, purchase_amount))


async def apply_coupon(db: AsyncSession, tenant_id: uuid.UUID, code: str) -> CouponCode:
    """Count one use of the coupon.

    The increment is a single guarded UPDATE, so concurrent redemptions can
    never push used_count past usage_limit.
    """
    normalised = _normalise(code)
    result = await db.execute(
        update(CouponCode)
        .where(
            CouponCode.tenant_id == tenant_id,
            CouponCode.code == normalised,
            CouponCode.is_active.is_(True),
            or_(CouponCode.usage_limit.is_(None), CouponCode.used_count < CouponCode.usage_limit),
        )
        .values(used_count=CouponCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    coupon = await get_coupon(db, tenant_id, normalised)
    if coupon is None:
        raise NotFoundError(f"Coupon '{normalised}' not found")
    await db.refresh(coupon)
    if result.rowcount == 0:
        raise InvalidStateError(f"Coupon '{normalised}' is inactive or fully redeemed")

    logger.info("billing.coupon_applied", tenant_id=str(tenant_id), code=normalised, used_count=coupon.used_count)
    return coupon
