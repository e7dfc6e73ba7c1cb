from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller, require_entitlement
from tixledger.schemas.billing import (
    ApplyCouponRequest,
    CouponCreate,
    CouponResponse,
    CouponValidationResponse,
    ValidateCouponRequest,
)
from tixledger.services import coupon_service

router = APIRouter(prefix="/billing/coupons", tags=["coupons"])


@router.get("", response_model=list[CouponResponse])
async def list_coupons(
    caller: Annotated[CallerContext, Depends(require_entitlement("coupons"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    active_only: bool = False,
):
    return await coupon_service.list_coupons(db, caller.tenant_id, active_only=active_only)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CouponResponse)
async def create_coupon(
    caller: Annotated[CallerContext, Depends(require_entitlement("coupons"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: CouponCreate,
):
    data = body.model_dump()
    data["app_id"] = caller.app_id
    coupon = await coupon_service.create_coupon(db, caller.tenant_id, data)
    await db.commit()
    return coupon


@router.post("/validate", response_model=CouponValidationResponse)
async def validate_coupon(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: ValidateCouponRequest,
):
    validation = await coupon_service.validate_coupon(db, caller.tenant_id, body.code, body.purchase_amount)
    return CouponValidationResponse(
        valid=validation.valid,
        discount_amount=validation.discount_amount,
        error=validation.error,
        coupon=CouponResponse.model_validate(validation.coupon) if validation.coupon else None,
    )


@router.post("/apply", response_model=CouponResponse)
async def apply_coupon(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: ApplyCouponRequest,
):
    coupon = await coupon_service.apply_coupon(db, caller.tenant_id, body.code)
    await db.commit()
    return coupon
