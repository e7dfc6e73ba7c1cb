"""Read-only reporting over sales, access grants, the ledger and allocations."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.models.allocation import TicketWalletAllocation
from tixledger.models.ticketing import EmailAccessGrant, Order, Ticket
from tixledger.models.wallet import UserWallet, WalletTransaction

PURCHASED = "purchased"
GRANTED = "granted"

SORT_FIELDS = ("date", "user_email", "ticket_title", "quantity")


@dataclass
class SalesReportEntry:
    id: str
    type: str
    date: datetime
    user_email: str
    ticket_id: uuid.UUID
    ticket_title: str
    quantity: int
    currency: str
    amount: Decimal | None = None
    order_number: str | None = None


@dataclass
class SalesReportFilter:
    type: str | None = None  # purchased | granted | all
    ticket_id: uuid.UUID | None = None
    user_email: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


def _sort_key(sort_by: str):
    if sort_by == "user_email":
        return lambda e: e.user_email.lower()
    if sort_by == "ticket_title":
        return lambda e: e.ticket_title.lower()
    if sort_by == "quantity":
        return lambda e: e.quantity
    return lambda e: e.date if e.date.tzinfo else e.date.replace(tzinfo=timezone.utc)


async def _purchased_entries(db: AsyncSession, tenant_id: uuid.UUID, flt: SalesReportFilter) -> list[SalesReportEntry]:
    # Ownership is decided by the ticket's tenant, whatever app_id the order carries
    conditions = [Ticket.tenant_id == tenant_id, Order.status == "completed", Order.ticket_id.is_not(None)]
    if flt.ticket_id:
        conditions.append(Order.ticket_id == flt.ticket_id)
    if flt.user_email:
        conditions.append(Order.customer_email.ilike(f"%{flt.user_email}%"))
    if flt.start_date:
        conditions.append(Order.created_at >= flt.start_date)
    if flt.end_date:
        conditions.append(Order.created_at <= flt.end_date)

    result = await db.execute(
        select(Order, Ticket.title).join(Ticket, Order.ticket_id == Ticket.id).where(*conditions)
    )
    return [
        SalesReportEntry(
            id=f"order-{order.id}",
            type=PURCHASED,
            date=order.created_at,
            user_email=order.customer_email or "",
            ticket_id=order.ticket_id,
            ticket_title=title or "",
            quantity=order.quantity,
            currency=order.currency or settings.BILLING_DEFAULT_CURRENCY,
            amount=order.total_amount,
            order_number=order.order_number,
        )
        for order, title in result.all()
    ]


async def _granted_entries(db: AsyncSession, tenant_id: uuid.UUID, flt: SalesReportFilter) -> list[SalesReportEntry]:
    conditions = [Ticket.tenant_id == tenant_id, EmailAccessGrant.status == "active"]
    if flt.ticket_id:
        conditions.append(EmailAccessGrant.ticket_id == flt.ticket_id)
    if flt.user_email:
        conditions.append(EmailAccessGrant.email.ilike(f"%{flt.user_email}%"))
    if flt.start_date:
        conditions.append(EmailAccessGrant.granted_at >= flt.start_date)
    if flt.end_date:
        conditions.append(EmailAccessGrant.granted_at <= flt.end_date)

    result = await db.execute(
        select(EmailAccessGrant, Ticket.title)
        .join(Ticket, EmailAccessGrant.ticket_id == Ticket.id)
        .where(*conditions)
    )
    return [
        SalesReportEntry(
            id=f"grant-{grant.id}",
            type=GRANTED,
            date=grant.granted_at,
            user_email=grant.email,
            ticket_id=grant.ticket_id,
            ticket_title=title or "",
            quantity=1,
            currency=settings.BILLING_DEFAULT_CURRENCY,
        )
        for grant, title in result.all()
    ]


async def get_sales_report(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    flt: SalesReportFilter | None = None,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "date",
    sort_order: str = "desc",
) -> tuple[list[SalesReportEntry], int]:
    """Completed orders and active email grants for the tenant's tickets, merged."""
    flt = flt or SalesReportFilter()
    page = max(1, page)
    page_size = max(1, min(settings.SALES_REPORT_MAX_PAGE_SIZE, page_size))

    entries: list[SalesReportEntry] = []
    if flt.type in (None, "all", PURCHASED):
        entries.extend(await _purchased_entries(db, tenant_id, flt))
    if flt.type in (None, "all", GRANTED):
        entries.extend(await _granted_entries(db, tenant_id, flt))

    entries.sort(key=_sort_key(sort_by), reverse=sort_order != "asc")
    offset = (page - 1) * page_size
    return entries[offset:offset + page_size], len(entries)


async def get_usage_summary(db: AsyncSession, tenant_id: uuid.UUID, user_id: str | None = None) -> dict:
    """Ledger totals per transaction type plus allocation totals."""
    ledger_conditions = [WalletTransaction.tenant_id == tenant_id]
    allocation_conditions = [TicketWalletAllocation.tenant_id == tenant_id]
    wallet_conditions = [UserWallet.tenant_id == tenant_id]
    if user_id:
        ledger_conditions.append(WalletTransaction.user_id == user_id)
        allocation_conditions.append(TicketWalletAllocation.user_id == user_id)
        wallet_conditions.append(UserWallet.user_id == user_id)

    by_type = await db.execute(
        select(
            WalletTransaction.transaction_type,
            func.count(WalletTransaction.id),
            func.coalesce(func.sum(WalletTransaction.amount), 0),
        )
        .where(*ledger_conditions)
        .group_by(WalletTransaction.transaction_type)
    )
    transactions = {
        tx_type: {"count": count, "net_amount": int(total)} for tx_type, count, total in by_type.all()
    }

    allocated, available = (
        await db.execute(
            select(
                func.coalesce(func.sum(TicketWalletAllocation.allocated_quantity), 0),
                func.coalesce(func.sum(TicketWalletAllocation.available_quantity), 0),
            ).where(*allocation_conditions, TicketWalletAllocation.status == "active")
        )
    ).one()

    balance = await db.scalar(
        select(func.coalesce(func.sum(UserWallet.ticket_balance), 0)).where(*wallet_conditions)
    )

    return {
        "wallet_balance": int(balance or 0),
        "transactions": transactions,
        "allocations": {
            "allocated": int(allocated),
            "available": int(available),
            "consumed": int(allocated) - int(available),
        },
    }
