"""Tests for plan tier classification and feature gating."""

import pytest

from tixledger.services import entitlement_service, subscription_service
from tixledger.services.entitlement_service import (
    FREE,
    PREMIUM,
    PRO,
    get_plan_limits,
    get_plan_tier,
    has_feature_access,
    meets_tier,
    qualifies_for_pro_activation,
)

from tests.conftest import create_test_plan


class TestGetPlanTier:
    def test_known_names(self):
        assert get_plan_tier("Pro") == PRO
        assert get_plan_tier("premium") == PREMIUM

    def test_case_and_whitespace_ignored(self):
        assert get_plan_tier("  PRO ") == PRO

    def test_unknown_and_empty_are_free(self):
        assert get_plan_tier("Basic") == FREE
        assert get_plan_tier("") == FREE
        assert get_plan_tier(None) == FREE


class TestTierChecks:
    def test_hierarchy(self):
        assert meets_tier(PREMIUM, PRO)
        assert meets_tier(PRO, PRO)
        assert not meets_tier(FREE, PRO)

    def test_pro_activation_qualification(self):
        assert qualifies_for_pro_activation("Pro")
        assert qualifies_for_pro_activation("Premium")
        assert not qualifies_for_pro_activation("Basic")

    def test_feature_access(self):
        assert not has_feature_access(FREE, "sales_reports")
        assert has_feature_access(PRO, "sales_reports")
        assert has_feature_access(PREMIUM, "coupons")
        assert has_feature_access(FREE, "max_live_events")
        assert not has_feature_access(PRO, "no_such_feature")

    def test_unknown_tier_gets_free_limits(self):
        assert get_plan_limits("enterprise") == get_plan_limits(FREE)


class TestUserPlanTier:
    @pytest.mark.asyncio
    async def test_no_subscription_is_free(self, db, tenant_a):
        assert await entitlement_service.get_user_plan_tier(db, tenant_a.id, tenant_a.user_id) == FREE

    @pytest.mark.asyncio
    async def test_active_pro_subscription(self, db, tenant_a, system_tenant):
        plan = await create_test_plan(db, system_tenant.id, name="Premium")
        await subscription_service.purchase_plan(db, tenant_a.id, tenant_a.user_id, plan.id)
        assert await entitlement_service.get_user_plan_tier(db, tenant_a.id, tenant_a.user_id) == PREMIUM
