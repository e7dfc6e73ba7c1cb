"""Tests for quantity-tiered ticket pricing."""

from decimal import Decimal

import pytest

from tixledger.services.pricing import PriceTier, build_tiers, default_tiers, get_ticket_unit_price


class TestDefaultTiers:
    def test_tier_boundaries_are_exact(self):
        assert get_ticket_unit_price(99) == Decimal("30")
        assert get_ticket_unit_price(100) == Decimal("25")
        assert get_ticket_unit_price(999) == Decimal("20")
        assert get_ticket_unit_price(1000) == Decimal("15")

    def test_single_ticket(self):
        assert get_ticket_unit_price(1) == Decimal("30")

    def test_unbounded_top_tier(self):
        assert get_ticket_unit_price(1_000_000) == Decimal("15")

    def test_tiers_are_ordered(self):
        tiers = default_tiers()
        mins = [t.min_quantity for t in tiers]
        assert mins == sorted(mins)
        assert tiers[-1].max_quantity is None


class TestCustomTiers:
    def test_gap_falls_back_to_first_tier(self):
        tiers = build_tiers([
            {"min": 10, "max": 19, "price": "9"},
            {"min": 50, "max": None, "price": "5"},
        ])
        assert get_ticket_unit_price(30, tiers) == Decimal("9")
        assert get_ticket_unit_price(5, tiers) == Decimal("9")
        assert get_ticket_unit_price(50, tiers) == Decimal("5")

    def test_overlapping_tiers_rejected(self):
        with pytest.raises(ValueError, match="overlap"):
            build_tiers([
                {"min": 1, "max": 100, "price": "10"},
                {"min": 100, "max": None, "price": "8"},
            ])

    def test_unbounded_tier_must_be_last(self):
        with pytest.raises(ValueError):
            build_tiers([
                {"min": 1, "max": None, "price": "10"},
                {"min": 100, "max": 200, "price": "8"},
            ])

    def test_empty_table_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            build_tiers([])

    def test_price_parsed_as_decimal(self):
        (tier,) = build_tiers([{"min": 1, "max": None, "price": 12.5}])
        assert tier == PriceTier(min_quantity=1, max_quantity=None, unit_price=Decimal("12.5"))
