from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller
from tixledger.core.exceptions import NotFoundError
from tixledger.schemas.billing import (
    CancelSubscriptionRequest,
    PlanPurchaseResponse,
    PlanTierResponse,
    PurchasePlanRequest,
    SubscriptionResponse,
)
from tixledger.services import entitlement_service, subscription_service
from tixledger.services.pro_activation import CascadeOk
from tixledger.services.subscription_service import PlanPurchase

router = APIRouter(prefix="/billing/subscription", tags=["subscriptions"])


def serialize_purchase(purchase: PlanPurchase) -> dict:
    outcome = purchase.pro_activation
    pro_activation = None
    if isinstance(outcome, CascadeOk):
        pro_activation = {
            "success": True,
            "old_app_id": outcome.result.old_app_id,
            "new_app_id": outcome.result.new_app_id,
            "total_rows_affected": outcome.result.total_rows_affected,
        }
    elif outcome is not None:
        pro_activation = {
            "success": False,
            "new_app_id": outcome.attempted_app_id,
            "error": outcome.error,
        }
    return {
        "subscription": SubscriptionResponse.model_validate(purchase.subscription),
        "invoice": purchase.invoice,
        "wallet_balance": purchase.wallet_balance,
        "pro_activation": pro_activation,
    }


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    subscription = await subscription_service.get_subscription(db, caller.tenant_id, caller.user_id)
    if subscription is None:
        raise NotFoundError("No active subscription")
    return subscription


@router.get("/tier", response_model=PlanTierResponse)
async def get_tier(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    tier = await entitlement_service.get_user_plan_tier(db, caller.tenant_id, caller.user_id)
    return PlanTierResponse(tier=tier, limits=entitlement_service.get_plan_limits(tier))


@router.post("/purchase", status_code=status.HTTP_201_CREATED, response_model=PlanPurchaseResponse)
async def purchase_plan(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: PurchasePlanRequest,
):
    # purchase_plan commits itself before running the Pro activation cascade
    purchase = await subscription_service.purchase_plan(
        db,
        caller.tenant_id,
        caller.user_id,
        body.plan_id,
        payment_method_id=body.payment_method_id,
        external_payment_id=body.external_payment_id,
        billing_address=body.billing_address,
    )
    return serialize_purchase(purchase)


@router.post("/cancel", response_model=list[SubscriptionResponse])
async def cancel_subscription(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: CancelSubscriptionRequest,
):
    subscriptions = await subscription_service.cancel_subscription(
        db, caller.tenant_id, caller.user_id, immediate=body.immediate
    )
    await db.commit()
    return subscriptions
