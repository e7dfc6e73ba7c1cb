"""Tests for the ticket wallet and its append-only ledger."""

import uuid

import pytest
from sqlalchemy import func, select

from tixledger.core.exceptions import InsufficientBalanceError
from tixledger.models.wallet import UserWallet, WalletTransaction
from tixledger.services import wallet_service


class TestGetOrCreateWallet:
    @pytest.mark.asyncio
    async def test_created_with_zero_balance(self, db, tenant_a):
        wallet = await wallet_service.get_or_create_wallet(db, tenant_a.id, "viewer-1")
        assert wallet.ticket_balance == 0
        assert wallet.app_id == tenant_a.app_id

    @pytest.mark.asyncio
    async def test_second_access_returns_same_row(self, db, tenant_a):
        first = await wallet_service.get_or_create_wallet(db, tenant_a.id, "viewer-1")
        second = await wallet_service.get_or_create_wallet(db, tenant_a.id, "viewer-1")
        assert first.id == second.id
        count = await db.scalar(select(func.count(UserWallet.id)).where(UserWallet.tenant_id == tenant_a.id))
        assert count == 1

    @pytest.mark.asyncio
    async def test_wallets_are_per_tenant(self, db, tenant_a, tenant_b):
        a = await wallet_service.get_or_create_wallet(db, tenant_a.id, "shared-user")
        b = await wallet_service.get_or_create_wallet(db, tenant_b.id, "shared-user")
        assert a.id != b.id


class TestCreditAndConsume:
    @pytest.mark.asyncio
    async def test_failed_consume_leaves_balance_and_ledger_untouched(self, db, tenant_a):
        await wallet_service.credit(db, tenant_a.id, "u1", 50, wallet_service.MANUAL_PURCHASE)
        posting = await wallet_service.consume(db, tenant_a.id, "u1", 30, "ticket_publish", "t-1")
        assert posting.wallet.ticket_balance == 20

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await wallet_service.consume(db, tenant_a.id, "u1", 30, "ticket_publish", "t-2")
        assert exc_info.value.required == 30
        assert exc_info.value.available == 20

        wallet = await wallet_service.get_or_create_wallet(db, tenant_a.id, "u1")
        assert wallet.ticket_balance == 20
        entries, total = await wallet_service.list_transactions(db, tenant_a.id, user_id="u1")
        assert total == 2

    @pytest.mark.asyncio
    async def test_ledger_entry_records_before_and_after(self, db, tenant_a):
        await wallet_service.credit(db, tenant_a.id, "u1", 10, wallet_service.PLAN_PURCHASE)
        posting = await wallet_service.consume(db, tenant_a.id, "u1", 4, "order", "o-1")
        entry = posting.entry
        assert entry.amount == -4
        assert entry.balance_before == 10
        assert entry.balance_after == 6
        assert entry.transaction_type == wallet_service.CONSUMPTION
        assert entry.reference_type == "order"
        assert entry.reference_id == "o-1"

    @pytest.mark.asyncio
    async def test_ledger_replay_matches_balance(self, db, tenant_a):
        await wallet_service.credit(db, tenant_a.id, "u1", 100, wallet_service.PLAN_PURCHASE)
        await wallet_service.consume(db, tenant_a.id, "u1", 35, "order", "o-1")
        await wallet_service.credit(db, tenant_a.id, "u1", 5, wallet_service.ALLOCATION_RELEASE)
        await wallet_service.consume(db, tenant_a.id, "u1", 70, "order", "o-2")

        wallet = await wallet_service.get_or_create_wallet(db, tenant_a.id, "u1")
        assert wallet.ticket_balance == 0
        assert await wallet_service.get_ledger_balance(db, tenant_a.id, "u1") == wallet.ticket_balance

    @pytest.mark.asyncio
    async def test_credit_uses_given_entry_id(self, db, tenant_a):
        entry_id = uuid.uuid4()
        posting = await wallet_service.credit(
            db, tenant_a.id, "u1", 3, wallet_service.MANUAL_PURCHASE, entry_id=entry_id
        )
        assert posting.entry.id == entry_id

    @pytest.mark.asyncio
    async def test_credit_rejects_debit_type(self, db, tenant_a):
        with pytest.raises(ValueError):
            await wallet_service.credit(db, tenant_a.id, "u1", 5, wallet_service.CONSUMPTION)

    @pytest.mark.asyncio
    async def test_non_positive_quantities_rejected(self, db, tenant_a):
        with pytest.raises(ValueError):
            await wallet_service.credit(db, tenant_a.id, "u1", 0, wallet_service.MANUAL_PURCHASE)
        with pytest.raises(ValueError):
            await wallet_service.consume(db, tenant_a.id, "u1", -1, "order", "o-1")
        count = await db.scalar(select(func.count(WalletTransaction.id)))
        assert count == 0


class TestListTransactions:
    @pytest.mark.asyncio
    async def test_filter_by_type_and_paginate(self, db, tenant_a):
        for _ in range(3):
            await wallet_service.credit(db, tenant_a.id, "u1", 10, wallet_service.MANUAL_PURCHASE)
        await wallet_service.consume(db, tenant_a.id, "u1", 5, "order", "o-1")

        credits, total = await wallet_service.list_transactions(
            db, tenant_a.id, user_id="u1", transaction_type=wallet_service.MANUAL_PURCHASE, page_size=2
        )
        assert total == 3
        assert len(credits) == 2

    @pytest.mark.asyncio
    async def test_scoped_to_tenant(self, db, tenant_a, tenant_b):
        await wallet_service.credit(db, tenant_a.id, "u1", 10, wallet_service.MANUAL_PURCHASE)
        _, total = await wallet_service.list_transactions(db, tenant_b.id, user_id="u1")
        assert total == 0
