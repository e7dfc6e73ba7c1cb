"""Ticket purchases and consumption: wallet movement plus its paperwork."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.models.invoice import Invoice
from tixledger.models.wallet import UserWallet, WalletTransaction
from tixledger.services import audit_service, invoice_service, wallet_service
from tixledger.services.invoice_service import LineItem
from tixledger.services.pricing import get_ticket_unit_price

logger = structlog.get_logger()


@dataclass
class TicketPurchase:
    wallet: UserWallet
    entry: WalletTransaction
    invoice: Invoice


async def purchase_tickets(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    quantity: int,
    unit_price: Decimal | None = None,
    currency: str | None = None,
    payment_method_id: str | None = None,
    external_payment_id: str | None = None,
    billing_address: dict | None = None,
) -> TicketPurchase:
    """Credit `quantity` tickets and invoice them in the same unit of work.

    Without an explicit unit_price the tiered price for the quantity applies.
    """
    if quantity <= 0:
        raise ValueError("quantity must be greater than 0")
    price = unit_price if unit_price is not None else get_ticket_unit_price(quantity)
    currency = currency or settings.BILLING_DEFAULT_CURRENCY

    entry_id = uuid.uuid4()
    invoice_number = invoice_service.generate_invoice_number(invoice_service.TICKETS_PREFIX, entry_id)

    posting = await wallet_service.credit(
        db, tenant_id, user_id, quantity, wallet_service.MANUAL_PURCHASE,
        reference_type="invoice",
        reference_id=invoice_number,
        description=f"Purchased {quantity} tickets",
        metadata={"quantity": quantity, "unit_price": str(price)},
        entry_id=entry_id,
    )
    invoice = await invoice_service.create_invoice(
        db, tenant_id, user_id,
        invoice_number=invoice_number,
        items=[
            LineItem(
                item_type="tickets",
                item_name="Event Tickets",
                quantity=quantity,
                unit_price=price,
                currency=currency,
                metadata={"quantity": quantity},
            )
        ],
        app_id=posting.wallet.app_id,
        currency=currency,
        payment_method=payment_method_id,
        external_payment_id=external_payment_id,
        billing_address=billing_address,
    )
    await audit_service.log_event(
        db,
        tenant_id=tenant_id,
        category="billing",
        action="tickets.purchased",
        actor_id=user_id,
        resource_type="invoice",
        resource_id=invoice.invoice_number,
        payload={"quantity": quantity, "unit_price": str(price), "total_amount": str(invoice.total_amount)},
    )
    logger.info(
        "billing.tickets_purchased",
        tenant_id=str(tenant_id),
        user_id=user_id,
        quantity=quantity,
        unit_price=str(price),
        invoice_number=invoice.invoice_number,
    )
    return TicketPurchase(wallet=posting.wallet, entry=posting.entry, invoice=invoice)


async def consume_tickets(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    quantity: int,
    reference_type: str,
    reference_id: str,
    description: str | None = None,
    metadata: dict | None = None,
) -> wallet_service.LedgerPosting:
    return await wallet_service.consume(
        db, tenant_id, user_id, quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        metadata=metadata,
    )
