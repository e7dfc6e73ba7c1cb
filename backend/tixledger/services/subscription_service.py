"""Plan purchase and the subscription lifecycle.

purchase_plan is the one service function that commits: the subscription,
initial-ticket credit and invoice are committed together before the Pro
activation cascade runs, so a failed cascade can never take the purchase
down with it.
"""

from __future__ import annotations

import calendar
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from tixledger.core.exceptions import InvalidStateError, NotFoundError
from tixledger.models.invoice import Invoice
from tixledger.models.subscription import UserSubscription
from tixledger.services import (
    audit_service,
    entitlement_service,
    invoice_service,
    plan_service,
    pro_activation,
    tenant_service,
    wallet_service,
)
from tixledger.services.invoice_service import LineItem

logger = structlog.get_logger()


@dataclass
class PlanPurchase:
    subscription: UserSubscription
    invoice: Invoice
    wallet_balance: int
    pro_activation: pro_activation.CascadeOutcome | None = None


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length (Jan 31 + 1 -> Feb 28/29)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_period_end(period_start: datetime, billing_cycle: str) -> datetime:
    if billing_cycle == "monthly":
        return add_months(period_start, 1)
    if billing_cycle == "yearly":
        return add_months(period_start, 12)
    raise InvalidStateError(f"Unsupported billing cycle '{billing_cycle}'")


async def get_subscription(db: AsyncSession, tenant_id: uuid.UUID, user_id: str) -> UserSubscription | None:
    """Most recent active subscription for the user, with its plan loaded."""
    result = await db.execute(
        select(UserSubscription)
        .where(
            UserSubscription.tenant_id == tenant_id,
            UserSubscription.user_id == user_id,
            UserSubscription.status == "active",
        )
        .order_by(UserSubscription.current_period_start.desc())
        .limit(1)
    )
    return result.scalars().first()


async def purchase_plan(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    plan_id: uuid.UUID,
    payment_method_id: str | None = None,
    external_payment_id: str | None = None,
    billing_address: dict | None = None,
    actor_type: str = "user",
) -> PlanPurchase:
    plan = await plan_service.get_plan(db, tenant_id, plan_id)
    if not plan.is_active:
        raise InvalidStateError(f"Billing plan '{plan.name}' is not active")

    period_start = datetime.now(timezone.utc)
    period_end = compute_period_end(period_start, plan.billing_cycle)
    tenant = await tenant_service.get_tenant_by_id(db, tenant_id)

    subscription = UserSubscription(
        tenant_id=tenant_id,
        user_id=user_id,
        app_id=tenant.app_id,
        plan_id=plan.id,
        plan=plan,
        status="active",
        current_period_start=period_start,
        current_period_end=period_end,
        cancel_at_period_end=False,
        payment_method_id=payment_method_id,
    )
    db.add(subscription)
    await db.flush()

    wallet = await wallet_service.get_or_create_wallet(db, tenant_id, user_id)
    if plan.initial_tickets > 0:
        posting = await wallet_service.credit(
            db, tenant_id, user_id, plan.initial_tickets, wallet_service.PLAN_PURCHASE,
            reference_type="subscription",
            reference_id=str(subscription.id),
            description=f"Initial tickets from {plan.name}",
            metadata={"plan_id": str(plan.id)},
        )
        wallet = posting.wallet

    invoice = await invoice_service.create_invoice(
        db, tenant_id, user_id,
        invoice_number=invoice_service.generate_invoice_number(invoice_service.PLAN_PREFIX, subscription.id),
        items=[
            LineItem(
                item_type="subscription",
                item_name=plan.name,
                quantity=1,
                unit_price=plan.price,
                currency=plan.currency,
                metadata={"plan_id": str(plan.id), "billing_cycle": plan.billing_cycle},
            )
        ],
        app_id=tenant.app_id,
        currency=plan.currency,
        payment_method=payment_method_id,
        external_payment_id=external_payment_id,
        billing_address=billing_address,
    )

    await audit_service.log_event(
        db,
        tenant_id=tenant_id,
        category="billing",
        action="subscription.purchased",
        actor_id=user_id,
        actor_type=actor_type,
        resource_type="subscription",
        resource_id=str(subscription.id),
        payload={
            "plan_id": str(plan.id),
            "plan_name": plan.name,
            "invoice_number": invoice.invoice_number,
            "initial_tickets": plan.initial_tickets,
        },
    )
    await db.commit()

    logger.info(
        "billing.plan_purchased",
        tenant_id=str(tenant_id),
        user_id=user_id,
        plan_id=str(plan.id),
        subscription_id=str(subscription.id),
        invoice_number=invoice.invoice_number,
    )

    purchase = PlanPurchase(subscription=subscription, invoice=invoice, wallet_balance=wallet.ticket_balance)
    if entitlement_service.qualifies_for_pro_activation(plan.name):
        purchase.pro_activation = await pro_activation.run(db, user_id)
        if not purchase.pro_activation.success:
            # The failed cascade rolled the session back, which expires loaded rows
            await db.refresh(subscription)
            await db.refresh(invoice)
    return purchase


async def cancel_subscription(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    immediate: bool = False,
) -> list[UserSubscription]:
    """Cancel the user's active subscriptions.

    Graceful (default) keeps them active until current_period_end;
    immediate ends them now. No refunds either way.
    """
    result = await db.execute(
        select(UserSubscription)
        .where(
            UserSubscription.tenant_id == tenant_id,
            UserSubscription.user_id == user_id,
            UserSubscription.status == "active",
        )
        .with_for_update()
    )
    subscriptions = list(result.scalars().unique().all())
    if not subscriptions:
        raise NotFoundError("No active subscription to cancel")
    if not immediate and all(s.cancel_at_period_end for s in subscriptions):
        raise InvalidStateError("Subscription is already scheduled to cancel at period end")

    now = datetime.now(timezone.utc)
    for subscription in subscriptions:
        if immediate:
            subscription.status = "cancelled"
            subscription.cancelled_at = now
            subscription.cancel_at_period_end = False
        else:
            subscription.cancel_at_period_end = True
    await db.flush()

    await audit_service.log_event(
        db,
        tenant_id=tenant_id,
        category="billing",
        action="subscription.cancelled",
        actor_id=user_id,
        resource_type="subscription",
        resource_id=",".join(str(s.id) for s in subscriptions),
        payload={"immediate": immediate},
    )
    logger.info(
        "billing.subscription_cancelled",
        tenant_id=str(tenant_id),
        user_id=user_id,
        immediate=immediate,
        count=len(subscriptions),
    )
    return subscriptions


async def admin_grant_plan(db: AsyncSession, tenant_id: uuid.UUID, plan_name: str) -> PlanPurchase:
    """Grant a plan without collecting payment (compensation, failed-billing fixes).

    Same path as a paid purchase, for the tenant's owning user, with a
    synthetic payment reference.
    """
    plan = await plan_service.get_plan_by_name(db, plan_name)
    tenant = await tenant_service.get_tenant_by_id(db, tenant_id)

    logger.info("billing.admin_plan_grant", tenant_id=str(tenant_id), plan_name=plan.name)
    return await purchase_plan(
        db,
        tenant_id,
        tenant.user_id,
        plan.id,
        external_payment_id=f"admin-grant-{int(time.time() * 1000)}",
        actor_type="admin",
    )


def expire_lapsed_subscriptions_sync(db: Session, now: datetime | None = None) -> dict:
    """Close out active subscriptions whose period has ended.

    Rows scheduled with cancel_at_period_end become "cancelled", the rest
    "expired". Runs from the periodic worker on a sync session and commits.
    """
    now = now or datetime.now(timezone.utc)
    subscriptions = (
        db.execute(
            select(UserSubscription)
            .where(
                UserSubscription.status == "active",
                UserSubscription.current_period_end <= now,
            )
            .with_for_update()
        )
        .scalars()
        .unique()
        .all()
    )

    expired = 0
    cancelled = 0
    for subscription in subscriptions:
        if subscription.cancel_at_period_end:
            subscription.status = "cancelled"
            subscription.cancelled_at = subscription.cancelled_at or now
            cancelled += 1
        else:
            subscription.status = "expired"
            expired += 1
    db.commit()

    logger.info("billing.subscriptions_swept", expired=expired, cancelled=cancelled)
    return {"expired": expired, "cancelled": cancelled}
