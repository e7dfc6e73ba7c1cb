"""Tests for plan purchase, period arithmetic and cancellation."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tixledger.core.exceptions import InvalidStateError, NotFoundError
from tixledger.models.audit import AuditEvent
from tixledger.models.invoice import Invoice
from tixledger.models.subscription import UserSubscription
from tixledger.models.tenant import Tenant
from tixledger.services import audit_service, subscription_service, tenant_service, wallet_service
from tixledger.services.pro_activation import CascadeFailed, CascadeOk
from tixledger.services.subscription_service import add_months, compute_period_end

from tests.conftest import create_test_plan


class TestPeriodArithmetic:
    def test_monthly(self):
        start = datetime(2026, 3, 15, 10, 30, tzinfo=timezone.utc)
        assert compute_period_end(start, "monthly") == datetime(2026, 4, 15, 10, 30, tzinfo=timezone.utc)

    def test_yearly(self):
        start = datetime(2026, 3, 15, tzinfo=timezone.utc)
        assert compute_period_end(start, "yearly") == datetime(2027, 3, 15, tzinfo=timezone.utc)

    def test_month_end_clamped(self):
        assert add_months(datetime(2026, 1, 31, tzinfo=timezone.utc), 1).day == 28
        assert add_months(datetime(2028, 1, 31, tzinfo=timezone.utc), 1).day == 29

    def test_december_rolls_year(self):
        assert add_months(datetime(2026, 12, 5, tzinfo=timezone.utc), 1) == datetime(2027, 1, 5, tzinfo=timezone.utc)

    def test_leap_day_yearly(self):
        assert compute_period_end(datetime(2028, 2, 29, tzinfo=timezone.utc), "yearly").day == 28

    def test_unknown_cycle(self):
        with pytest.raises(InvalidStateError):
            compute_period_end(datetime.now(timezone.utc), "weekly")


class TestPurchasePlan:
    @pytest.mark.asyncio
    async def test_basic_plan_creates_subscription_credit_and_invoice(self, db, tenant_a, basic_plan):
        purchase = await subscription_service.purchase_plan(
            db, tenant_a.id, tenant_a.user_id, basic_plan.id, external_payment_id="pay_1"
        )

        assert purchase.subscription.status == "active"
        assert purchase.subscription.plan.id == basic_plan.id
        assert purchase.wallet_balance == 20
        assert purchase.invoice.invoice_number.startswith("INV-PLAN-")
        assert purchase.invoice.total_amount == Decimal("199.00")
        assert purchase.invoice.status == "pending"
        assert purchase.pro_activation is None

        entries, _ = await wallet_service.list_transactions(db, tenant_a.id, user_id=tenant_a.user_id)
        assert [e.transaction_type for e in entries] == [wallet_service.PLAN_PURCHASE]
        assert entries[0].reference_id == str(purchase.subscription.id)

    @pytest.mark.asyncio
    async def test_pro_plan_activates_tenant(self, db, tenant_a, pro_plan):
        purchase = await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, pro_plan.id)

        assert isinstance(purchase.pro_activation, CascadeOk)
        assert purchase.pro_activation.result.new_app_id == str(tenant_a.id)
        tenant = await tenant_service.get_tenant_by_id(db, tenant_a.id)
        assert tenant.is_pro
        assert tenant.app_id == str(tenant_a.id)

    @pytest.mark.asyncio
    async def test_cascade_failure_keeps_purchase(self, db, tenant_a, pro_plan, monkeypatch):
        async def broken_activate_pro(*args, **kwargs):
            raise RuntimeError("app_id rewrite failed")

        monkeypatch.setattr(tenant_service, "activate_pro", broken_activate_pro)

        purchase = await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, pro_plan.id)

        assert isinstance(purchase.pro_activation, CascadeFailed)
        assert purchase.pro_activation.success is False
        assert "rewrite failed" in purchase.pro_activation.error
        assert purchase.subscription.status == "active"

        subs = await db.scalar(select(func.count(UserSubscription.id)).where(UserSubscription.tenant_id == tenant_a.id))
        invoices = await db.scalar(select(func.count(Invoice.id)).where(Invoice.tenant_id == tenant_a.id))
        assert subs == 1
        assert invoices == 1

        tenant = await db.scalar(select(Tenant).where(Tenant.id == tenant_a.id))
        assert tenant.is_pro is False

        failure = await db.scalar(
            select(AuditEvent).where(AuditEvent.action == "tenant.pro_activated", AuditEvent.status == "failed")
        )
        assert failure is not None
        assert failure.error_message == "app_id rewrite failed"

    @pytest.mark.asyncio
    async def test_inactive_plan_rejected(self, db, tenant_a, system_tenant):
        plan = await create_test_plan(db, system_tenant.id, name="Legacy", is_active=False)
        with pytest.raises(InvalidStateError):
            await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, plan.id)

    @pytest.mark.asyncio
    async def test_other_tenants_plan_not_visible(self, db, tenant_a, tenant_b):
        plan = await create_test_plan(db, tenant_b.id, name="B Only")
        with pytest.raises(NotFoundError):
            await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, plan.id)

    @pytest.mark.asyncio
    async def test_zero_initial_tickets_skips_credit(self, db, tenant_a, system_tenant):
        plan = await create_test_plan(db, system_tenant.id, name="Starter", initial_tickets=0)
        purchase = await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, plan.id)

        assert purchase.wallet_balance == 0
        _, total = await wallet_service.list_transactions(db, tenant_a.id, user_id=tenant_a.user_id)
        assert total == 0


class TestCancelSubscription:
    @pytest.mark.asyncio
    async def test_graceful_cancel_keeps_active(self, db, tenant_a, basic_plan):
        await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, basic_plan.id)
        (subscription,) = await subscription_service.cancel_subscription(db, tenant_a.id, tenant_a.user_id)

        assert subscription.status == "active"
        assert subscription.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_second_graceful_cancel_rejected(self, db, tenant_a, basic_plan):
        await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, basic_plan.id)
        await subscription_service.cancel_subscription(db, tenant_a.id, tenant_a.user_id)
        with pytest.raises(InvalidStateError):
            await subscription_service.cancel_subscription(db, tenant_a.id, tenant_a.user_id)

    @pytest.mark.asyncio
    async def test_immediate_cancel(self, db, tenant_a, basic_plan):
        await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, basic_plan.id)
        (subscription,) = await subscription_service.cancel_subscription(
            db, tenant_a.id, tenant_a.user_id, immediate=True
        )

        assert subscription.status == "cancelled"
        assert subscription.cancelled_at is not None
        assert await subscription_service.get_subscription(db, tenant_a.id, tenant_a.user_id) is None

    @pytest.mark.asyncio
    async def test_nothing_to_cancel(self, db, tenant_a):
        with pytest.raises(NotFoundError):
            await subscription_service.cancel_subscription(db, tenant_a.id, tenant_a.user_id)

    @pytest.mark.asyncio
    async def test_cancel_does_not_refund(self, db, tenant_a, basic_plan):
        await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, basic_plan.id)
        await subscription_service.cancel_subscription(db, tenant_a.id, tenant_a.user_id, immediate=True)

        wallet = await wallet_service.get_or_create_wallet(db, tenant_a.id, tenant_a.user_id)
        assert wallet.ticket_balance == 20


class TestAdminGrantPlan:
    @pytest.mark.asyncio
    async def test_grant_by_name(self, db, tenant_a, basic_plan):
        purchase = await subscription_service.admin_grant_plan(db, tenant_a.id, "  basic ")

        assert purchase.subscription.user_id == tenant_a.user_id
        assert purchase.invoice.external_payment_id.startswith("admin-grant-")
        event = await db.scalar(select(AuditEvent).where(AuditEvent.action == "subscription.purchased"))
        assert event.actor_type == "admin"

    @pytest.mark.asyncio
    async def test_unknown_plan_name(self, db, tenant_a, system_tenant):
        with pytest.raises(NotFoundError):
            await subscription_service.admin_grant_plan(db, tenant_a.id, "Platinum")


class TestBillingAuditTrail:
    @pytest.mark.asyncio
    async def test_purchase_and_cancel_listed_newest_first(self, db, tenant_a, tenant_b, basic_plan):
        await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, basic_plan.id)
        await subscription_service.cancel_subscription(db, tenant_a.id, tenant_a.user_id, immediate=True)
        await audit_service.log_event(db, tenant_b.id, "billing", "subscription.purchased")

        events, total = await audit_service.list_events(db, tenant_a.id, category="billing")
        assert total == 2
        assert [e.action for e in events] == ["subscription.cancelled", "subscription.purchased"]

        page, total = await audit_service.list_events(db, tenant_a.id, page=2, page_size=1)
        assert total == 2
        assert [e.action for e in page] == ["subscription.purchased"]
