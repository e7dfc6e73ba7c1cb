"""Ticket capacity reserved from a producer's wallet for a listing.

Allocating moves tickets out of the free wallet balance into an
allocation row; decreasing or releasing moves the unconsumed part back as
a compensating credit.

Allocate, update and release lock the wallet row before reading the
allocation. The wallet row exists even when the allocation does not, so
two allocate calls on the same (user, ticket) serialise on it instead of
both taking the "no allocation yet" branch. Lock order is always wallet,
then allocation.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.exceptions import InsufficientBalanceError, NotFoundError
from tixledger.models.allocation import TicketWalletAllocation
from tixledger.services import wallet_service

logger = structlog.get_logger()

ALLOCATION_REFERENCE = "ticket_allocation"
ALLOCATION_INCREASE_REFERENCE = "ticket_allocation_increase"


async def get_allocation(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    ticket_id: uuid.UUID,
    lock: bool = False,
) -> TicketWalletAllocation | None:
    stmt = select(TicketWalletAllocation).where(
        TicketWalletAllocation.tenant_id == tenant_id,
        TicketWalletAllocation.user_id == user_id,
        TicketWalletAllocation.ticket_id == ticket_id,
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _require_active(
    db: AsyncSession, tenant_id: uuid.UUID, user_id: str, ticket_id: uuid.UUID
) -> TicketWalletAllocation:
    allocation = await get_allocation(db, tenant_id, user_id, ticket_id, lock=True)
    if allocation is None or allocation.status != "active":
        raise NotFoundError(f"Allocation not found for ticket {ticket_id}")
    return allocation


async def allocate_tickets(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    ticket_id: uuid.UUID,
    quantity: int,
) -> TicketWalletAllocation:
    """Reserve `quantity` more tickets for a listing, debiting the wallet.

    The wallet debit runs first, so an InsufficientBalanceError leaves no
    allocation row behind and an existing row unchanged.
    """
    if quantity <= 0:
        raise ValueError("allocation quantity must be greater than 0")

    wallet = await wallet_service.get_or_create_wallet(db, tenant_id, user_id, lock=True)
    allocation = await get_allocation(db, tenant_id, user_id, ticket_id, lock=True)
    is_new = allocation is None or allocation.status != "active"

    await wallet_service.consume(
        db, tenant_id, user_id, quantity,
        reference_type=ALLOCATION_REFERENCE,
        reference_id=str(ticket_id),
        description=(
            f"Allocated {quantity} tickets for ticket {ticket_id}"
            if is_new
            else f"Additional allocation of {quantity} tickets for ticket {ticket_id}"
        ),
    )

    if allocation is None:
        allocation = TicketWalletAllocation(
            tenant_id=tenant_id,
            user_id=user_id,
            ticket_id=ticket_id,
            app_id=wallet.app_id,
            allocated_quantity=quantity,
            available_quantity=quantity,
            status="active",
        )
        db.add(allocation)
    elif is_new:
        # Re-activating a released row keeps the (tenant, user, ticket) key unique
        allocation.allocated_quantity = quantity
        allocation.available_quantity = quantity
        allocation.status = "active"
    else:
        allocation.allocated_quantity += quantity
        allocation.available_quantity += quantity
    await db.flush()

    logger.info(
        "billing.allocation_increased",
        tenant_id=str(tenant_id),
        user_id=user_id,
        ticket_id=str(ticket_id),
        quantity=quantity,
        allocated=allocation.allocated_quantity,
        available=allocation.available_quantity,
    )
    return allocation


async def update_allocation(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    ticket_id: uuid.UUID,
    new_quantity: int,
) -> TicketWalletAllocation:
    """Set the allocated amount to `new_quantity`.

    Growing debits the difference from the wallet. Shrinking credits back at
    most the unconsumed part (available_quantity): tickets already issued
    against the allocation are never refunded.
    """
    if new_quantity < 0:
        raise ValueError("allocation quantity cannot be negative")

    await wallet_service.get_or_create_wallet(db, tenant_id, user_id, lock=True)
    allocation = await _require_active(db, tenant_id, user_id, ticket_id)
    diff = new_quantity - allocation.allocated_quantity

    if diff > 0:
        await wallet_service.consume(
            db, tenant_id, user_id, diff,
            reference_type=ALLOCATION_INCREASE_REFERENCE,
            reference_id=str(ticket_id),
            description=f"Increased allocation by {diff} tickets for ticket {ticket_id}",
        )
    elif diff < 0:
        refundable = min(-diff, allocation.available_quantity)
        if refundable > 0:
            await wallet_service.credit(
                db, tenant_id, user_id, refundable, wallet_service.ALLOCATION_DECREASE,
                reference_type=ALLOCATION_REFERENCE,
                reference_id=str(ticket_id),
                description=f"Decreased allocation by {-diff} tickets for ticket {ticket_id}",
                metadata={"requested_decrease": -diff, "credited": refundable},
            )
        if refundable < -diff:
            logger.warning(
                "billing.allocation_decrease_capped",
                tenant_id=str(tenant_id),
                user_id=user_id,
                ticket_id=str(ticket_id),
                requested=-diff,
                credited=refundable,
            )

    allocation.allocated_quantity = new_quantity
    allocation.available_quantity = max(0, allocation.available_quantity + diff)
    await db.flush()

    logger.info(
        "billing.allocation_updated",
        tenant_id=str(tenant_id),
        user_id=user_id,
        ticket_id=str(ticket_id),
        allocated=allocation.allocated_quantity,
        available=allocation.available_quantity,
    )
    return allocation


async def release_allocation(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    ticket_id: uuid.UUID,
) -> int:
    """Close the allocation and return its unconsumed tickets to the wallet.

    Returns the released quantity.
    """
    await wallet_service.get_or_create_wallet(db, tenant_id, user_id, lock=True)
    allocation = await _require_active(db, tenant_id, user_id, ticket_id)
    released_quantity = allocation.available_quantity

    if released_quantity > 0:
        await wallet_service.credit(
            db, tenant_id, user_id, released_quantity, wallet_service.ALLOCATION_RELEASE,
            reference_type=ALLOCATION_REFERENCE,
            reference_id=str(ticket_id),
            description=f"Released {released_quantity} tickets from ticket {ticket_id}",
        )

    allocation.status = "released"
    allocation.available_quantity = 0
    await db.flush()

    logger.info(
        "billing.allocation_released",
        tenant_id=str(tenant_id),
        user_id=user_id,
        ticket_id=str(ticket_id),
        released=released_quantity,
    )
    return released_quantity


async def consume_from_allocation(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    ticket_id: uuid.UUID,
    quantity: int,
) -> TicketWalletAllocation:
    """Issue `quantity` tickets against reserved capacity (no wallet movement)."""
    if quantity <= 0:
        raise ValueError("quantity must be greater than 0")

    allocation = await _require_active(db, tenant_id, user_id, ticket_id)
    if allocation.available_quantity < quantity:
        raise InsufficientBalanceError(
            required=quantity,
            available=allocation.available_quantity,
            detail=(
                f"Allocation for ticket {ticket_id} has {allocation.available_quantity} "
                f"tickets available, {quantity} requested"
            ),
        )
    allocation.available_quantity -= quantity
    await db.flush()
    return allocation


async def list_allocations(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    ticket_id: uuid.UUID | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[TicketWalletAllocation], int]:
    page = max(1, page)
    page_size = max(1, min(100, page_size))
    conditions = [
        TicketWalletAllocation.tenant_id == tenant_id,
        TicketWalletAllocation.user_id == user_id,
    ]
    if ticket_id:
        conditions.append(TicketWalletAllocation.ticket_id == ticket_id)
    if status:
        conditions.append(TicketWalletAllocation.status == status)

    total = await db.scalar(select(func.count(TicketWalletAllocation.id)).where(*conditions)) or 0
    result = await db.execute(
        select(TicketWalletAllocation)
        .where(*conditions)
        .order_by(TicketWalletAllocation.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
