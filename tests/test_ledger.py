"""Tests for wallet balance adjustments."""

from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from parkwallet.config import settings
from parkwallet.errors import Conflict, InsufficientFunds, InvalidArgument, NotFound
from parkwallet.store.ledger import Ledger


@pytest.mark.asyncio
async def test_top_up_and_deduct(db_session: AsyncSession):
    ledger = Ledger(db_session)
    wallet = await ledger.create("U1", initial_balance=1000)

    wallet = await ledger.top_up(wallet.wallet_id, 500)
    assert wallet.current_balance == 1500

    wallet = await ledger.deduct(wallet.wallet_id, 1200, reference="PARK_1")
    assert wallet.current_balance == 300
    assert wallet.version == 3


@pytest.mark.asyncio
async def test_deduct_below_zero_fails_without_writing(db_session: AsyncSession):
    ledger = Ledger(db_session)
    wallet = await ledger.create("U1", initial_balance=1000)

    with pytest.raises(InsufficientFunds) as exc_info:
        await ledger.deduct(wallet.wallet_id, 1001)

    assert exc_info.value.required == 1001
    assert exc_info.value.balance == 1000

    unchanged = await ledger.get(wallet.wallet_id)
    assert unchanged.current_balance == 1000
    assert unchanged.version == 1
    # Only the initial top up is recorded
    assert len(await ledger.list_transactions(wallet.wallet_id)) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5])
async def test_non_positive_amounts_are_rejected(db_session: AsyncSession, amount: int):
    ledger = Ledger(db_session)
    wallet = await ledger.create("U1", initial_balance=100)

    with pytest.raises(InvalidArgument):
        await ledger.top_up(wallet.wallet_id, amount)
    with pytest.raises(InvalidArgument):
        await ledger.deduct(wallet.wallet_id, amount)


@pytest.mark.asyncio
async def test_unknown_wallet(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await Ledger(db_session).top_up("WALLET_missing", 10)


@pytest.mark.asyncio
async def test_audit_trail_records_every_change(db_session: AsyncSession):
    ledger = Ledger(db_session)
    wallet = await ledger.create("U1", initial_balance=5000)
    await ledger.deduct(wallet.wallet_id, 2000, reference="PARK_42")

    deductions = await ledger.deductions_for("PARK_42")
    assert len(deductions) == 1
    assert deductions[0].delta == -2000
    assert deductions[0].balance_after == 3000


@pytest.mark.asyncio
async def test_lost_compare_and_set_is_retried_then_conflicts(db_session: AsyncSession, monkeypatch):
    ledger = Ledger(db_session, max_retries=2)
    wallet = await ledger.create("U1", initial_balance=5000)

    original_get = ledger.get

    async def stale_get(wallet_id):
        # Every read looks stale, as if another writer always got there first
        fresh = await original_get(wallet_id)
        return SimpleNamespace(
            wallet_id=fresh.wallet_id,
            current_balance=fresh.current_balance,
            version=fresh.version - 1,
        )

    monkeypatch.setattr(ledger, "get", stale_get)

    with pytest.raises(Conflict):
        await ledger.deduct(wallet.wallet_id, 100)

    monkeypatch.undo()
    assert (await ledger.get(wallet.wallet_id)).current_balance == 5000


@pytest.mark.asyncio
async def test_explicit_retry_count_is_respected(db_session: AsyncSession):
    assert Ledger(db_session).max_retries == settings.LEDGER_MAX_RETRIES

    ledger = Ledger(db_session, max_retries=0)
    assert ledger.max_retries == 0
    wallet = await ledger.create("U1", initial_balance=5000)

    # No attempts allowed, so the adjustment gives up without writing
    with pytest.raises(Conflict):
        await ledger.deduct(wallet.wallet_id, 100)
    assert (await ledger.get(wallet.wallet_id)).current_balance == 5000
