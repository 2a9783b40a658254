"""
Unit tests for WalletService.

These tests use the in-memory SQLite async session fixture (db_session)
to validate hold credits, releases, idempotency and ledger snapshots.
"""
import asyncio
import os
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, func
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    LedgerEntryNotFoundError,
    RetryPolicy,
    ValidationException,
    WalletNotFoundError,
)
from app.db.database import Base
from app.db.models.booking import Booking
from app.db.models.partner_wallet import PartnerWallet
from app.db.models.wallet_ledger import WalletLedger, WalletEntryType, WithdrawalMethod
from app.db.unit_of_work import UnitOfWork
from app.domain.services.wallet_service import WalletService, to_money, wallet_lock_query

PARTNER_ID = 7001


async def _credit(db_session, booking_id, amount="125.00", partner_id=PARTNER_ID, release_date=None):
    release_date = release_date or datetime.utcnow() + timedelta(days=7)
    async with UnitOfWork(db_session) as uow:
        return await WalletService().credit_hold(
            uow, partner_id, booking_id, Decimal(amount), release_date
        )


@pytest.mark.unit
def test_to_money_rounds_half_up():
    assert to_money("10.005") == Decimal("10.01")
    assert to_money(125) == Decimal("125.00")


@pytest.mark.unit
async def test_credit_hold_creates_wallet_and_entry(booking_factory, db_session):
    booking = await booking_factory(partner_id=PARTNER_ID)
    release_date = datetime.utcnow() + timedelta(days=7)

    outcome = await _credit(db_session, booking.id, release_date=release_date)

    assert outcome.already_processed is False
    entry = outcome.entry
    assert entry.entry_type == WalletEntryType.HOLD_CREDIT
    assert entry.amount == Decimal("125.00")
    assert entry.balance_hold_before == Decimal("0.00")
    assert entry.balance_hold_after == Decimal("125.00")
    assert entry.balance_available_before == entry.balance_available_after == Decimal("0.00")
    assert entry.release_date == release_date
    assert entry.is_released is False

    wallet = await WalletService().get_wallet(db_session, PARTNER_ID)
    assert wallet.balance_hold == Decimal("125.00")
    assert wallet.balance_available == Decimal("0.00")
    assert wallet.total_earned == Decimal("125.00")


@pytest.mark.unit
async def test_credit_hold_is_idempotent_per_booking(booking_factory, db_session):
    booking = await booking_factory(partner_id=PARTNER_ID)

    first = await _credit(db_session, booking.id)
    second = await _credit(db_session, booking.id)

    assert second.already_processed is True
    assert second.entry.id == first.entry.id

    wallet = await WalletService().get_wallet(db_session, PARTNER_ID)
    assert wallet.balance_hold == Decimal("125.00")

    count = await db_session.scalar(
        select(func.count()).select_from(WalletLedger).where(
            WalletLedger.booking_id == booking.id,
            WalletLedger.entry_type == WalletEntryType.HOLD_CREDIT,
        )
    )
    assert count == 1


@pytest.mark.unit
async def test_credit_hold_accumulates_across_bookings(booking_factory, wallet_factory, db_session):
    await wallet_factory(balance_hold=Decimal("50.00"), balance_available=Decimal("20.00"))
    first = await booking_factory(partner_id=PARTNER_ID)
    second = await booking_factory(partner_id=PARTNER_ID)

    await _credit(db_session, first.id, amount="100.00")
    outcome = await _credit(db_session, second.id, amount="25.50")

    assert outcome.entry.balance_hold_before == Decimal("150.00")
    assert outcome.entry.balance_hold_after == Decimal("175.50")
    wallet = await WalletService().get_wallet(db_session, PARTNER_ID)
    assert wallet.balance_hold == Decimal("175.50")
    assert wallet.balance_available == Decimal("20.00")


@pytest.mark.unit
@pytest.mark.parametrize("amount", ["0", "-5.00"])
async def test_credit_hold_rejects_non_positive_amount(booking_factory, db_session, amount):
    booking = await booking_factory(partner_id=PARTNER_ID)

    with pytest.raises(InvalidAmountError) as exc_info:
        await _credit(db_session, booking.id, amount=amount)

    assert exc_info.value.to_dict()["error"]["code"] == "ERR_4003"
    wallet = await db_session.scalar(select(PartnerWallet).where(PartnerWallet.partner_id == PARTNER_ID))
    assert wallet is None


@pytest.mark.unit
async def test_release_moves_hold_to_available(booking_factory, db_session):
    booking = await booking_factory(partner_id=PARTNER_ID)
    hold = (await _credit(db_session, booking.id)).entry

    async with UnitOfWork(db_session) as uow:
        release_entry = await WalletService().release(uow, hold.id)

    assert release_entry.entry_type == WalletEntryType.RELEASE
    assert release_entry.amount == Decimal("125.00")
    assert release_entry.parent_entry_id == hold.id
    assert release_entry.balance_hold_after == Decimal("0.00")
    assert release_entry.balance_available_after == Decimal("125.00")

    await db_session.refresh(hold)
    assert hold.is_released is True
    assert hold.released_at is not None

    wallet = await WalletService().get_wallet(db_session, PARTNER_ID)
    assert wallet.balance_hold == Decimal("0.00")
    assert wallet.balance_available == Decimal("125.00")
    # releasing is not earning
    assert wallet.total_earned == Decimal("125.00")


@pytest.mark.unit
async def test_release_twice_is_a_no_op(booking_factory, db_session):
    booking = await booking_factory(partner_id=PARTNER_ID)
    hold = (await _credit(db_session, booking.id)).entry

    async with UnitOfWork(db_session) as uow:
        await WalletService().release(uow, hold.id)
    async with UnitOfWork(db_session) as uow:
        second = await WalletService().release(uow, hold.id)

    assert second is None
    wallet = await WalletService().get_wallet(db_session, PARTNER_ID)
    assert wallet.balance_available == Decimal("125.00")


@pytest.mark.unit
async def test_release_of_a_release_entry_is_skipped(booking_factory, db_session):
    booking = await booking_factory(partner_id=PARTNER_ID)
    hold = (await _credit(db_session, booking.id)).entry
    async with UnitOfWork(db_session) as uow:
        release_entry = await WalletService().release(uow, hold.id)

    async with UnitOfWork(db_session) as uow:
        assert await WalletService().release(uow, release_entry.id) is None


@pytest.mark.unit
async def test_release_unknown_entry(db_session):
    with pytest.raises(LedgerEntryNotFoundError):
        async with UnitOfWork(db_session) as uow:
            await WalletService().release(uow, 999)


@pytest.mark.unit
async def test_get_wallet_missing(db_session):
    with pytest.raises(WalletNotFoundError):
        await WalletService().get_wallet(db_session, 123)


@pytest.mark.unit
async def test_find_due_holds_only_returns_matured_unreleased(booking_factory, db_session):
    now = datetime.utcnow()
    matured = await booking_factory(partner_id=PARTNER_ID)
    pending = await booking_factory(partner_id=PARTNER_ID)
    released = await booking_factory(partner_id=PARTNER_ID)

    matured_entry = (await _credit(db_session, matured.id, release_date=now - timedelta(hours=1))).entry
    await _credit(db_session, pending.id, release_date=now + timedelta(days=3))
    released_entry = (await _credit(db_session, released.id, release_date=now - timedelta(days=1))).entry
    async with UnitOfWork(db_session) as uow:
        await WalletService().release(uow, released_entry.id)

    due = await WalletService().find_due_holds(db_session, now)

    assert due == [matured_entry.id]


@pytest.mark.unit
async def test_ledger_history_newest_first(booking_factory, db_session):
    booking = await booking_factory(partner_id=PARTNER_ID)
    hold = (await _credit(db_session, booking.id)).entry
    async with UnitOfWork(db_session) as uow:
        await WalletService().release(uow, hold.id)

    history = await WalletService().get_ledger_history(db_session, PARTNER_ID)

    assert [entry.entry_type for entry in history] == [
        WalletEntryType.RELEASE,
        WalletEntryType.HOLD_CREDIT,
    ]
    assert await WalletService().get_ledger_history(db_session, PARTNER_ID, limit=1) == history[:1]


async def _withdraw(db_session, amount, method=WithdrawalMethod.BANK, min_amount="500"):
    async with UnitOfWork(db_session) as uow:
        return await WalletService().withdraw(uow, PARTNER_ID, Decimal(amount), method, min_amount)


@pytest.mark.unit
async def test_withdraw_moves_available_out_and_keeps_hold(wallet_factory, db_session):
    wallet = await wallet_factory(
        balance_hold=Decimal("50.00"), balance_available=Decimal("1000.00")
    )

    entry = await _withdraw(db_session, "600.00")

    await db_session.refresh(wallet)
    assert wallet.balance_available == Decimal("400.00")
    assert wallet.balance_hold == Decimal("50.00")
    assert entry.entry_type == WalletEntryType.WITHDRAW_BANK
    assert entry.booking_id is None
    assert entry.amount == Decimal("600.00")
    assert entry.balance_available_before == Decimal("1000.00")
    assert entry.balance_available_after == Decimal("400.00")
    assert entry.balance_hold_before == entry.balance_hold_after == Decimal("50.00")
    assert entry.description == "Withdrawal via BANK"


@pytest.mark.unit
async def test_repeated_withdrawals_each_get_an_entry(wallet_factory, db_session):
    await wallet_factory(balance_available=Decimal("1200.00"))

    first = await _withdraw(db_session, "500.00", method="upi")
    second = await _withdraw(db_session, "500.00", method=WithdrawalMethod.UPI)

    assert first.id != second.id
    assert first.entry_type == second.entry_type == WalletEntryType.WITHDRAW_UPI
    assert second.balance_available_after == Decimal("200.00")


@pytest.mark.unit
async def test_withdraw_of_exact_available_balance(wallet_factory, db_session):
    wallet = await wallet_factory(balance_available=Decimal("500.00"))

    await _withdraw(db_session, "500.00")

    await db_session.refresh(wallet)
    assert wallet.balance_available == Decimal("0.00")


@pytest.mark.unit
@pytest.mark.parametrize("amount", ["0", "-10.00", "499.99"])
async def test_withdraw_rejects_invalid_amount(wallet_factory, db_session, amount):
    wallet = await wallet_factory(balance_available=Decimal("1000.00"))

    with pytest.raises(InvalidAmountError) as exc_info:
        await _withdraw(db_session, amount)

    assert exc_info.value.error_code.value == "ERR_4003"
    assert exc_info.value.retry_policy == RetryPolicy.FIX_INPUT
    await db_session.refresh(wallet)
    assert wallet.balance_available == Decimal("1000.00")


@pytest.mark.unit
async def test_withdraw_below_minimum_reports_the_minimum(wallet_factory, db_session):
    await wallet_factory(balance_available=Decimal("1000.00"))

    with pytest.raises(InvalidAmountError) as exc_info:
        await _withdraw(db_session, "100.00")

    assert exc_info.value.details["minimum"] == "500.00"
    assert exc_info.value.details["partner_id"] == PARTNER_ID


@pytest.mark.unit
async def test_withdraw_more_than_available(wallet_factory, db_session):
    wallet = await wallet_factory(
        balance_hold=Decimal("5000.00"), balance_available=Decimal("700.00")
    )

    with pytest.raises(InsufficientBalanceError) as exc_info:
        await _withdraw(db_session, "800.00")

    assert exc_info.value.retry_policy == RetryPolicy.NEEDS_EXTERNAL_CHANGE
    assert exc_info.value.details["balance_available"] == "700.00"
    await db_session.refresh(wallet)
    assert wallet.balance_available == Decimal("700.00")
    count = await db_session.scalar(select(func.count()).select_from(WalletLedger))
    assert count == 0


@pytest.mark.unit
async def test_withdraw_without_wallet(db_session):
    with pytest.raises(WalletNotFoundError):
        await _withdraw(db_session, "600.00")

    assert await db_session.scalar(select(func.count()).select_from(PartnerWallet)) == 0


@pytest.mark.unit
async def test_withdraw_rejects_unknown_method(wallet_factory, db_session):
    await wallet_factory(balance_available=Decimal("1000.00"))

    with pytest.raises(ValidationException):
        await _withdraw(db_session, "600.00", method="cash")


@pytest.mark.unit
def test_wallet_lock_query_locks_the_row():
    compiled = str(wallet_lock_query(PARTNER_ID).compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in compiled
    assert "partner_wallets" in compiled


@pytest.fixture
async def postgres_session_factory():
    """Separate connections against a real PostgreSQL; SQLite ignores FOR UPDATE"""
    url = os.environ.get("TEST_POSTGRES_URL")
    if not url:
        pytest.skip("TEST_POSTGRES_URL not set")

    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.mark.integration
async def test_concurrent_credits_serialize_on_the_wallet_row(postgres_session_factory):
    async with postgres_session_factory() as session:
        session.add(
            PartnerWallet(
                partner_id=PARTNER_ID,
                balance_hold=Decimal("0.00"),
                balance_available=Decimal("0.00"),
                total_earned=Decimal("0.00"),
            )
        )
        bookings = [
            Booking(customer_id=5001, partner_id=PARTNER_ID, status="service_completed",
                    total_amount=Decimal("400.00"))
            for _ in range(2)
        ]
        session.add_all(bookings)
        await session.commit()
        booking_ids = [booking.id for booking in bookings]

    async def credit(booking_id, amount):
        async with postgres_session_factory() as session:
            async with UnitOfWork(session, "concurrent_credit") as uow:
                await WalletService().credit_hold(
                    uow, PARTNER_ID, booking_id, Decimal(amount),
                    datetime.utcnow() + timedelta(days=7),
                )

    await asyncio.gather(credit(booking_ids[0], "125.00"), credit(booking_ids[1], "100.00"))

    async with postgres_session_factory() as session:
        wallet = await session.scalar(
            select(PartnerWallet).where(PartnerWallet.partner_id == PARTNER_ID)
        )
        assert wallet.balance_hold == Decimal("225.00")
        assert wallet.total_earned == Decimal("225.00")
        entries = (await session.execute(select(WalletLedger))).scalars().all()
        assert sorted(entry.amount for entry in entries) == [Decimal("100.00"), Decimal("125.00")]
