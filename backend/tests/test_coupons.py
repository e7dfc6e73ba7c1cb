"""Tests for coupon validation and redemption."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tixledger.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from tixledger.services import coupon_service


def _coupon_data(**overrides) -> dict:
    data = {
        "code": "launch20",
        "discount_type": "percentage",
        "discount_value": Decimal("20"),
        "max_discount": None,
        "min_purchase": None,
        "usage_limit": None,
        "valid_from": None,
        "valid_until": None,
        "is_active": True,
    }
    data.update(overrides)
    return data


class TestCreateCoupon:
    @pytest.mark.asyncio
    async def test_code_normalised(self, db, tenant_a):
        coupon = await coupon_service.create_coupon(db, tenant_a.id, _coupon_data(code="  launch20 "))
        assert coupon.code == "LAUNCH20"
        assert coupon.used_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_code_conflicts(self, db, tenant_a):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data())
        with pytest.raises(ConflictError):
            await coupon_service.create_coupon(db, tenant_a.id, _coupon_data(code="LAUNCH20"))

    @pytest.mark.asyncio
    async def test_same_code_other_tenant(self, db, tenant_a, tenant_b):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data())
        coupon = await coupon_service.create_coupon(db, tenant_b.id, _coupon_data())
        assert coupon.tenant_id == tenant_b.id


class TestValidateCoupon:
    @pytest.mark.asyncio
    async def test_percentage_discount(self, db, tenant_a):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data())
        result = await coupon_service.validate_coupon(db, tenant_a.id, "launch20", Decimal("500"))
        assert result.valid
        assert result.discount_amount == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_percentage_capped_by_max_discount(self, db, tenant_a):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data(max_discount=Decimal("50")))
        result = await coupon_service.validate_coupon(db, tenant_a.id, "LAUNCH20", Decimal("500"))
        assert result.discount_amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_fixed_discount_never_exceeds_amount(self, db, tenant_a):
        await coupon_service.create_coupon(
            db, tenant_a.id, _coupon_data(code="FLAT", discount_type="fixed", discount_value=Decimal("300"))
        )
        result = await coupon_service.validate_coupon(db, tenant_a.id, "flat", Decimal("120"))
        assert result.discount_amount == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_unknown_code(self, db, tenant_a):
        result = await coupon_service.validate_coupon(db, tenant_a.id, "NOPE", Decimal("10"))
        assert not result.valid
        assert result.error == "Coupon not found"

    @pytest.mark.asyncio
    async def test_inactive(self, db, tenant_a):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data(is_active=False))
        result = await coupon_service.validate_coupon(db, tenant_a.id, "LAUNCH20", Decimal("10"))
        assert result.error == "Coupon is not active"

    @pytest.mark.asyncio
    async def test_validity_window(self, db, tenant_a):
        now = datetime.now(timezone.utc)
        await coupon_service.create_coupon(
            db, tenant_a.id, _coupon_data(code="SOON", valid_from=now + timedelta(days=1))
        )
        await coupon_service.create_coupon(
            db, tenant_a.id, _coupon_data(code="GONE", valid_until=now - timedelta(days=1))
        )
        soon = await coupon_service.validate_coupon(db, tenant_a.id, "SOON", Decimal("10"), now=now)
        gone = await coupon_service.validate_coupon(db, tenant_a.id, "GONE", Decimal("10"), now=now)
        assert soon.error == "Coupon is not yet valid"
        assert gone.error == "Coupon has expired"

    @pytest.mark.asyncio
    async def test_minimum_purchase(self, db, tenant_a):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data(min_purchase=Decimal("200")))
        result = await coupon_service.validate_coupon(db, tenant_a.id, "LAUNCH20", Decimal("199"))
        assert not result.valid
        assert result.error.startswith("Minimum purchase amount")


class TestApplyCoupon:
    @pytest.mark.asyncio
    async def test_usage_limit_enforced(self, db, tenant_a):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data(usage_limit=1))

        coupon = await coupon_service.apply_coupon(db, tenant_a.id, "launch20")
        assert coupon.used_count == 1

        with pytest.raises(InvalidStateError):
            await coupon_service.apply_coupon(db, tenant_a.id, "launch20")
        coupon = await coupon_service.get_coupon(db, tenant_a.id, "LAUNCH20")
        assert coupon.used_count == 1

        result = await coupon_service.validate_coupon(db, tenant_a.id, "LAUNCH20", Decimal("10"))
        assert result.error == "Coupon usage limit reached"

    @pytest.mark.asyncio
    async def test_unlimited_coupon(self, db, tenant_a):
        await coupon_service.create_coupon(db, tenant_a.id, _coupon_data())
        for _ in range(3):
            coupon = await coupon_service.apply_coupon(db, tenant_a.id, "LAUNCH20")
        assert coupon.used_count == 3

    @pytest.mark.asyncio
    async def test_unknown_code(self, db, tenant_a):
        with pytest.raises(NotFoundError):
            await coupon_service.apply_coupon(db, tenant_a.id, "NOPE")
