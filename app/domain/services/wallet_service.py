"""
Wallet Service - partner hold/available balances and their ledger

Write operations take the caller's UnitOfWork and lock the wallet row
(SELECT ... FOR UPDATE) before the read-modify-write, so two concurrent
credits for the same partner serialize instead of racing.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    LedgerEntryNotFoundError,
    ValidationException,
    WalletNotFoundError,
)
from app.core.logging import get_logger
from app.db.models.partner_wallet import PartnerWallet
from app.db.models.wallet_ledger import WalletLedger, WalletEntryType, WithdrawalMethod
from app.db.unit_of_work import UnitOfWork
from app.domain.services.ledger_outcome import LedgerOutcome

logger = get_logger(__name__)

_CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def wallet_lock_query(partner_id: int):
    """SELECT ... FOR UPDATE on one wallet; refreshes an already-loaded instance"""
    return (
        select(PartnerWallet)
        .where(PartnerWallet.partner_id == partner_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


class WalletService:
    """Service for partner wallets"""

    async def _lock_or_create_wallet(self, uow: UnitOfWork, partner_id: int) -> PartnerWallet:
        result = await uow.session.execute(wallet_lock_query(partner_id))
        wallet = result.scalar_one_or_none()
        if wallet:
            return wallet

        # a concurrent first credit for the same partner fails on the unique
        # partner_id and rolls the whole unit of work back; the retry is safe
        wallet = PartnerWallet(
            partner_id=partner_id,
            balance_hold=Decimal("0.00"),
            balance_available=Decimal("0.00"),
            total_earned=Decimal("0.00"),
        )
        uow.session.add(wallet)
        await uow.flush()
        logger.info("Partner wallet created", extra_data={"partner_id": partner_id})
        return wallet

    async def _find_entry(
        self, db: AsyncSession, booking_id: int, entry_type: WalletEntryType
    ) -> Optional[WalletLedger]:
        result = await db.execute(
            select(WalletLedger).where(
                WalletLedger.booking_id == booking_id,
                WalletLedger.entry_type == entry_type,
            )
        )
        return result.scalar_one_or_none()

    async def credit_hold(
        self,
        uow: UnitOfWork,
        partner_id: int,
        booking_id: int,
        amount,
        release_date: datetime,
    ) -> LedgerOutcome:
        """
        Credit a booking's earnings into the partner's hold balance.

        Idempotent on (booking_id, hold_credit): a repeat call returns the
        existing entry and leaves the wallet untouched.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError("Credit amount must be positive", amount, partner_id=partner_id)

        wallet = await self._lock_or_create_wallet(uow, partner_id)

        # checked after taking the wallet lock so a concurrent credit is visible
        existing = await self._find_entry(uow.session, booking_id, WalletEntryType.HOLD_CREDIT)
        if existing:
            logger.info(
                "Hold credit already recorded for booking",
                extra_data={"booking_id": booking_id, "entry_id": existing.id},
            )
            return LedgerOutcome(entry=existing, already_processed=True)

        hold_before = wallet.balance_hold
        available = wallet.balance_available
        wallet.balance_hold = hold_before + amount
        wallet.total_earned = wallet.total_earned + amount
        wallet.updated_at = datetime.utcnow()

        entry = WalletLedger(
            partner_id=partner_id,
            booking_id=booking_id,
            entry_type=WalletEntryType.HOLD_CREDIT,
            amount=amount,
            balance_hold_before=hold_before,
            balance_hold_after=wallet.balance_hold,
            balance_available_before=available,
            balance_available_after=available,
            release_date=release_date,
            is_released=False,
            description=f"Earnings held for booking #{booking_id}",
        )
        uow.session.add(entry)
        await uow.flush()

        logger.info(
            "Hold credit recorded",
            extra_data={
                "partner_id": partner_id,
                "booking_id": booking_id,
                "amount": amount,
                "release_date": release_date,
            },
        )
        return LedgerOutcome(entry=entry)

    async def release(self, uow: UnitOfWork, entry_id: int) -> Optional[WalletLedger]:
        """
        Move a matured hold_credit from hold to available.

        Returns the new release entry, or None when the entry is already
        released or is not a hold_credit. Always releases the full amount.
        """
        result = await uow.session.execute(
            select(WalletLedger)
            .where(WalletLedger.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        hold_entry = result.scalar_one_or_none()
        if not hold_entry:
            raise LedgerEntryNotFoundError(entry_id)

        if hold_entry.entry_type != WalletEntryType.HOLD_CREDIT or hold_entry.is_released:
            logger.debug(
                "Release skipped",
                extra_data={
                    "entry_id": entry_id,
                    "entry_type": hold_entry.entry_type.value,
                    "is_released": hold_entry.is_released,
                },
            )
            return None

        wallet_result = await uow.session.execute(wallet_lock_query(hold_entry.partner_id))
        wallet = wallet_result.scalar_one_or_none()
        if not wallet:
            raise WalletNotFoundError(hold_entry.partner_id)

        amount = hold_entry.amount
        if wallet.balance_hold < amount:
            raise ValidationException(
                "Hold balance is lower than the entry being released",
                field="balance_hold",
                details={
                    "entry_id": entry_id,
                    "balance_hold": str(wallet.balance_hold),
                    "amount": str(amount),
                },
            )

        now = datetime.utcnow()
        hold_before = wallet.balance_hold
        available_before = wallet.balance_available
        wallet.balance_hold = hold_before - amount
        wallet.balance_available = available_before + amount
        wallet.updated_at = now

        release_entry = WalletLedger(
            partner_id=hold_entry.partner_id,
            booking_id=hold_entry.booking_id,
            entry_type=WalletEntryType.RELEASE,
            amount=amount,
            balance_hold_before=hold_before,
            balance_hold_after=wallet.balance_hold,
            balance_available_before=available_before,
            balance_available_after=wallet.balance_available,
            parent_entry_id=hold_entry.id,
            description=f"Hold released for booking #{hold_entry.booking_id}",
        )
        uow.session.add(release_entry)

        hold_entry.is_released = True
        hold_entry.released_at = now
        await uow.flush()

        logger.info(
            "Held earnings released",
            extra_data={
                "partner_id": hold_entry.partner_id,
                "entry_id": entry_id,
                "amount": amount,
            },
        )
        return release_entry

    async def withdraw(
        self,
        uow: UnitOfWork,
        partner_id: int,
        amount,
        method: WithdrawalMethod,
        min_amount=None,
    ) -> WalletLedger:
        """
        Pay out part of the available balance. The hold balance is untouched.

        Raises InvalidAmountError for a non-positive or below-minimum amount
        and InsufficientBalanceError when available cannot cover it.
        """
        amount = to_money(amount)
        try:
            method = WithdrawalMethod(method)
        except ValueError:
            raise ValidationException(f"Unsupported withdrawal method: {method}", field="method")
        if amount <= 0:
            raise InvalidAmountError("Withdrawal amount must be positive", amount, partner_id=partner_id)
        if min_amount is not None and amount < to_money(min_amount):
            raise InvalidAmountError(
                f"Minimum withdrawal is {to_money(min_amount)}",
                amount,
                partner_id=partner_id,
                minimum=to_money(min_amount),
            )

        result = await uow.session.execute(wallet_lock_query(partner_id))
        wallet = result.scalar_one_or_none()
        if not wallet:
            raise WalletNotFoundError(partner_id)

        if wallet.balance_available < amount:
            raise InsufficientBalanceError(partner_id, wallet.balance_available, amount)

        hold = wallet.balance_hold
        available_before = wallet.balance_available
        wallet.balance_available = available_before - amount
        wallet.updated_at = datetime.utcnow()

        entry = WalletLedger(
            partner_id=partner_id,
            booking_id=None,
            entry_type=method.entry_type,
            amount=amount,
            balance_hold_before=hold,
            balance_hold_after=hold,
            balance_available_before=available_before,
            balance_available_after=wallet.balance_available,
            description=f"Withdrawal via {method.value.upper()}",
        )
        uow.session.add(entry)
        await uow.flush()

        logger.info(
            "Withdrawal recorded",
            extra_data={
                "partner_id": partner_id,
                "amount": amount,
                "method": method.value,
                "balance_available": wallet.balance_available,
            },
        )
        return entry

    async def find_due_holds(
        self, db: AsyncSession, now: datetime, limit: int | None = None
    ) -> List[int]:
        """Ids of unreleased hold_credit entries whose release date has passed"""
        query = (
            select(WalletLedger.id)
            .where(
                WalletLedger.entry_type == WalletEntryType.HOLD_CREDIT,
                WalletLedger.is_released.is_(False),
                WalletLedger.release_date <= now,
            )
            .order_by(WalletLedger.release_date, WalletLedger.id)
        )
        if limit:
            query = query.limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_wallet(self, db: AsyncSession, partner_id: int) -> PartnerWallet:
        """Unlocked read; may be slightly stale next to a running transition"""
        result = await db.execute(
            select(PartnerWallet).where(PartnerWallet.partner_id == partner_id)
        )
        wallet = result.scalar_one_or_none()
        if not wallet:
            raise WalletNotFoundError(partner_id)
        return wallet

    async def get_ledger_history(
        self, db: AsyncSession, partner_id: int, limit: int = 20
    ) -> List[WalletLedger]:
        """Get transaction history for partner, newest first"""
        result = await db.execute(
            select(WalletLedger)
            .where(WalletLedger.partner_id == partner_id)
            .order_by(WalletLedger.created_at.desc(), WalletLedger.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
