"""Tests for invoice generation and payment confirmation."""

import uuid
from decimal import Decimal

import pytest

from tixledger.core.exceptions import NotFoundError
from tixledger.services import invoice_service
from tixledger.services.invoice_service import LineItem


def _tickets_item(quantity: int = 2, unit_price: str = "100.00") -> LineItem:
    return LineItem(item_type="tickets", item_name="Event Tickets", quantity=quantity, unit_price=Decimal(unit_price))


class TestInvoiceNumbers:
    def test_prefix_and_suffix(self):
        entity_id = uuid.uuid4()
        number = invoice_service.generate_invoice_number(invoice_service.PLAN_PREFIX, entity_id, now_ms=1718000000000)
        assert number == f"INV-PLAN-1718000000000-{entity_id.hex[:12]}"

    def test_same_millisecond_stays_unique(self):
        numbers = {
            invoice_service.generate_invoice_number(invoice_service.TICKETS_PREFIX, uuid.uuid4(), now_ms=42)
            for _ in range(50)
        }
        assert len(numbers) == 50


class TestTotals:
    def test_subtotal_tax_total(self):
        subtotal, tax, total = invoice_service.compute_totals(
            [_tickets_item(2, "100.00"), _tickets_item(1, "49.99")], Decimal("0.18")
        )
        assert subtotal == Decimal("249.99")
        assert tax == Decimal("45.00")
        assert total == Decimal("294.99")

    def test_tax_rounds_half_up(self):
        _, tax, _ = invoice_service.compute_totals([_tickets_item(1, "0.25")], Decimal("0.1"))
        assert tax == Decimal("0.03")

    def test_zero_tax(self):
        subtotal, tax, total = invoice_service.compute_totals([_tickets_item(3, "25")], Decimal("0"))
        assert (subtotal, tax, total) == (Decimal("75.00"), Decimal("0.00"), Decimal("75.00"))


class TestCreateInvoice:
    @pytest.mark.asyncio
    async def test_created_pending_with_items(self, db, tenant_a):
        invoice = await invoice_service.create_invoice(
            db, tenant_a.id, "u1",
            invoice_number="INV-TIX-1-abc",
            items=[_tickets_item()],
            tax_rate=Decimal("0.05"),
        )
        assert invoice.status == "pending"
        assert invoice.paid_at is None
        assert invoice.total_amount == Decimal("210.00")
        assert len(invoice.items) == 1
        assert invoice.items[0].total_price == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_empty_items_rejected(self, db, tenant_a):
        with pytest.raises(ValueError):
            await invoice_service.create_invoice(db, tenant_a.id, "u1", invoice_number="INV-X", items=[])

    @pytest.mark.asyncio
    async def test_get_scoped_to_user(self, db, tenant_a):
        invoice = await invoice_service.create_invoice(
            db, tenant_a.id, "u1", invoice_number="INV-TIX-2-abc", items=[_tickets_item()]
        )
        found = await invoice_service.get_invoice(db, tenant_a.id, invoice.id, user_id="u1")
        assert found.id == invoice.id
        with pytest.raises(NotFoundError):
            await invoice_service.get_invoice(db, tenant_a.id, invoice.id, user_id="someone-else")


class TestMarkPaid:
    @pytest.mark.asyncio
    async def test_pending_to_paid(self, db, tenant_a):
        await invoice_service.create_invoice(
            db, tenant_a.id, "u1", invoice_number="INV-TIX-3-abc", items=[_tickets_item()]
        )
        invoice, changed = await invoice_service.mark_paid(db, "INV-TIX-3-abc", external_payment_id="pay_1")
        assert changed
        assert invoice.status == "paid"
        assert invoice.paid_at is not None
        assert invoice.external_payment_id == "pay_1"

    @pytest.mark.asyncio
    async def test_repeat_is_noop(self, db, tenant_a):
        await invoice_service.create_invoice(
            db, tenant_a.id, "u1", invoice_number="INV-TIX-4-abc", items=[_tickets_item()]
        )
        first, _ = await invoice_service.mark_paid(db, "INV-TIX-4-abc", external_payment_id="pay_1")
        paid_at = first.paid_at
        again, changed = await invoice_service.mark_paid(db, "INV-TIX-4-abc", external_payment_id="pay_2")

        assert not changed
        assert again.status == "paid"
        assert again.paid_at == paid_at
        assert again.external_payment_id == "pay_1"

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, db):
        with pytest.raises(NotFoundError):
            await invoice_service.mark_paid(db, "INV-NOPE")
