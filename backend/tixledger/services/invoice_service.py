"""Invoices with their line items.

An invoice and its items are added to the session together and flushed
once, so a failed purchase never leaves a half-built invoice behind.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.core.exceptions import NotFoundError
from tixledger.models.invoice import Invoice, InvoiceItem

logger = structlog.get_logger()

PLAN_PREFIX = "INV-PLAN"
TICKETS_PREFIX = "INV-TIX"

_CENT = Decimal("0.01")


@dataclass
class LineItem:
    item_type: str
    item_name: str
    quantity: int
    unit_price: Decimal
    currency: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def total_price(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(_CENT, rounding=ROUND_HALF_UP)


def generate_invoice_number(prefix: str, entity_id: uuid.UUID, now_ms: int | None = None) -> str:
    """e.g. INV-PLAN-1718000000000-3f2a9c1b7d4e

    The millisecond stamp keeps numbers sortable; the entity id suffix keeps
    two purchases in the same millisecond apart.
    """
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}-{stamp}-{entity_id.hex[:12]}"


def compute_totals(items: list[LineItem], tax_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    subtotal = sum((item.total_price for item in items), Decimal("0"))
    tax_amount = (subtotal * tax_rate).quantize(_CENT, rounding=ROUND_HALF_UP)
    return subtotal, tax_amount, subtotal + tax_amount


async def create_invoice(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    invoice_number: str,
    items: list[LineItem],
    tax_rate: Decimal | None = None,
    app_id: str = "public",
    currency: str | None = None,
    status: str = "pending",
    payment_method: str | None = None,
    external_payment_id: str | None = None,
    billing_address: dict | None = None,
    notes: str | None = None,
) -> Invoice:
    if not items:
        raise ValueError("an invoice needs at least one line item")
    rate = settings.BILLING_TAX_RATE if tax_rate is None else Decimal(tax_rate)
    if rate < 0:
        raise ValueError("tax rate cannot be negative")
    currency = currency or items[0].currency or settings.BILLING_DEFAULT_CURRENCY
    subtotal, tax_amount, total_amount = compute_totals(items, rate)

    invoice = Invoice(
        tenant_id=tenant_id,
        user_id=user_id,
        app_id=app_id,
        invoice_number=invoice_number,
        status=status,
        subtotal=subtotal,
        tax_rate=rate,
        tax_amount=tax_amount,
        total_amount=total_amount,
        currency=currency,
        due_date=datetime.now(timezone.utc),
        paid_at=datetime.now(timezone.utc) if status == "paid" else None,
        payment_method=payment_method,
        external_payment_id=external_payment_id,
        billing_address=billing_address,
        notes=notes,
        items=[
            InvoiceItem(
                position=position,
                item_type=item.item_type,
                item_name=item.item_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                currency=item.currency or currency,
                metadata_json=item.metadata,
            )
            for position, item in enumerate(items)
        ],
    )
    db.add(invoice)
    await db.flush()

    logger.info(
        "billing.invoice_created",
        tenant_id=str(tenant_id),
        user_id=user_id,
        invoice_number=invoice_number,
        total_amount=str(total_amount),
        currency=currency,
    )
    return invoice


async def get_invoice(
    db: AsyncSession, tenant_id: uuid.UUID, invoice_id: uuid.UUID, user_id: str | None = None
) -> Invoice:
    stmt = select(Invoice).where(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
    if user_id:
        stmt = stmt.where(Invoice.user_id == user_id)
    result = await db.execute(stmt)
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


async def mark_paid(
    db: AsyncSession,
    invoice_number: str,
    external_payment_id: str | None = None,
    payment_method: str | None = None,
) -> tuple[Invoice, bool]:
    """Transition pending -> paid. Returns the invoice and whether it changed.

    Re-marking an already-paid invoice is a no-op success so payment
    webhooks can be retried; the first paid_at and payment id are kept.
    """
    result = await db.execute(
        select(Invoice).where(Invoice.invoice_number == invoice_number).with_for_update()
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_number} not found")

    if invoice.status == "paid":
        logger.info("billing.invoice_already_paid", invoice_number=invoice_number)
        return invoice, False

    invoice.status = "paid"
    invoice.paid_at = datetime.now(timezone.utc)
    invoice.external_payment_id = external_payment_id or invoice.external_payment_id
    if payment_method:
        invoice.payment_method = payment_method
    await db.flush()

    logger.info(
        "billing.invoice_paid",
        tenant_id=str(invoice.tenant_id),
        invoice_number=invoice_number,
        external_payment_id=external_payment_id,
    )
    return invoice, True


async def list_invoices(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str | None = None,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Invoice], int]:
    page = max(1, page)
    page_size = max(1, min(100, page_size))
    conditions = [Invoice.tenant_id == tenant_id]
    if user_id:
        conditions.append(Invoice.user_id == user_id)
    if status:
        conditions.append(Invoice.status == status)
    if start_date:
        conditions.append(Invoice.created_at >= start_date)
    if end_date:
        conditions.append(Invoice.created_at <= end_date)

    total = await db.scalar(select(func.count(Invoice.id)).where(*conditions)) or 0
    result = await db.execute(
        select(Invoice)
        .where(*conditions)
        .order_by(Invoice.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
