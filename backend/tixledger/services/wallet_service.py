"""Ticket wallet and its append-only transaction ledger.

Every balance change goes through apply_delta, which locks the wallet row
(SELECT ... FOR UPDATE), checks the resulting balance, updates it and
appends the ledger entry inside the caller's transaction. Callers own the
commit.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.core.exceptions import InsufficientBalanceError
from tixledger.models.tenant import Tenant
from tixledger.models.wallet import UserWallet, WalletTransaction

logger = structlog.get_logger()

PLAN_PURCHASE = "plan_purchase"
MANUAL_PURCHASE = "manual_purchase"
CONSUMPTION = "consumption"
ALLOCATION_DECREASE = "allocation_decrease"
ALLOCATION_RELEASE = "allocation_release"
ADMIN_ADJUSTMENT = "admin_adjustment"

CREDIT_TYPES = frozenset({PLAN_PURCHASE, MANUAL_PURCHASE, ALLOCATION_DECREASE, ALLOCATION_RELEASE, ADMIN_ADJUSTMENT})


@dataclass
class LedgerPosting:
    wallet: UserWallet
    entry: WalletTransaction


def _wallet_query(tenant_id: uuid.UUID, user_id: str, lock: bool):
    stmt = select(UserWallet).where(UserWallet.tenant_id == tenant_id, UserWallet.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    return stmt


async def get_or_create_wallet(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    lock: bool = False,
) -> UserWallet:
    """Return the (tenant, user) wallet, creating it with a zero balance on first access.

    Two first accesses racing each other both end up with the same row: the
    loser's insert hits the unique constraint inside a savepoint and it
    re-reads the winner's row.
    """
    result = await db.execute(_wallet_query(tenant_id, user_id, lock))
    wallet = result.scalar_one_or_none()
    if wallet:
        return wallet

    app_id = await db.scalar(select(Tenant.app_id).where(Tenant.id == tenant_id))
    wallet = UserWallet(
        tenant_id=tenant_id,
        user_id=user_id,
        app_id=app_id or "public",
        ticket_balance=0,
        currency=settings.BILLING_DEFAULT_CURRENCY,
    )
    try:
        async with db.begin_nested():
            db.add(wallet)
    except IntegrityError:
        result = await db.execute(_wallet_query(tenant_id, user_id, lock))
        return result.scalar_one()

    logger.info("billing.wallet_created", tenant_id=str(tenant_id), user_id=user_id)
    return wallet


async def apply_delta(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    delta: int,
    transaction_type: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    entry_id: uuid.UUID | None = None,
) -> LedgerPosting:
    """Change the wallet balance by `delta` and append the matching ledger entry.

    Raises InsufficientBalanceError, before writing anything, when the
    balance would go negative.
    """
    if delta == 0:
        raise ValueError("delta must be non-zero")

    wallet = await get_or_create_wallet(db, tenant_id, user_id, lock=True)
    balance_before = wallet.ticket_balance
    balance_after = balance_before + delta
    if balance_after < 0:
        raise InsufficientBalanceError(required=-delta, available=balance_before)

    wallet.ticket_balance = balance_after
    entry = WalletTransaction(
        id=entry_id or uuid.uuid4(),
        tenant_id=tenant_id,
        user_id=user_id,
        wallet_id=wallet.id,
        app_id=wallet.app_id,
        transaction_type=transaction_type,
        amount=delta,
        currency=wallet.currency,
        balance_before=balance_before,
        balance_after=balance_after,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        metadata_json=metadata or {},
    )
    db.add(entry)
    await db.flush()

    logger.info(
        "billing.wallet_delta_applied",
        tenant_id=str(tenant_id),
        user_id=user_id,
        transaction_type=transaction_type,
        delta=delta,
        balance_after=balance_after,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    return LedgerPosting(wallet=wallet, entry=entry)


async def credit(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    quantity: int,
    transaction_type: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    entry_id: uuid.UUID | None = None,
) -> LedgerPosting:
    if quantity <= 0:
        raise ValueError("credit quantity must be greater than 0")
    if transaction_type not in CREDIT_TYPES:
        raise ValueError(f"'{transaction_type}' is not a credit transaction type")
    return await apply_delta(
        db, tenant_id, user_id, quantity, transaction_type,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        metadata=metadata,
        entry_id=entry_id,
    )


async def consume(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str,
    quantity: int,
    reference_type: str,
    reference_id: str,
    description: str | None = None,
    metadata: dict | None = None,
) -> LedgerPosting:
    """Debit `quantity` tickets; fails with InsufficientBalanceError if the wallet can't cover it."""
    if quantity <= 0:
        raise ValueError("consume quantity must be greater than 0")
    return await apply_delta(
        db, tenant_id, user_id, -quantity, CONSUMPTION,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description or f"Consumed {quantity} tickets",
        metadata=metadata,
    )


async def list_transactions(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: str | None = None,
    transaction_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[WalletTransaction], int]:
    page = max(1, page)
    page_size = max(1, min(settings.TRANSACTIONS_MAX_PAGE_SIZE, page_size))

    conditions = [WalletTransaction.tenant_id == tenant_id]
    if user_id:
        conditions.append(WalletTransaction.user_id == user_id)
    if transaction_type:
        conditions.append(WalletTransaction.transaction_type == transaction_type)
    if start_date:
        conditions.append(WalletTransaction.created_at >= start_date)
    if end_date:
        conditions.append(WalletTransaction.created_at <= end_date)

    total = await db.scalar(select(func.count(WalletTransaction.id)).where(*conditions)) or 0
    result = await db.execute(
        select(WalletTransaction)
        .where(*conditions)
        .order_by(WalletTransaction.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def get_ledger_balance(db: AsyncSession, tenant_id: uuid.UUID, user_id: str) -> int:
    """Replay the ledger: the sum of every delta ever applied to the wallet."""
    result = await db.execute(
        select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
            WalletTransaction.tenant_id == tenant_id,
            WalletTransaction.user_id == user_id,
        )
    )
    return int(result.scalar() or 0)
