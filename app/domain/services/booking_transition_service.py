"""
Booking Transition Service - the only writer of booking state

transition() loads and locks the booking, normalizes its stored status,
checks gates then the state graph, and writes the new status, audit row
and (on completion) invoice, wallet hold-credit and inventory consumption
inside one UnitOfWork. Any failure rolls all of it back.
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BookingNotFoundError,
    InvalidTransitionError,
    PreconditionFailedError,
    ValidationException,
)
from app.core.logging import get_logger
from app.db.models.audit_log import AuditAction
from app.db.models.booking import Booking
from app.db.unit_of_work import UnitOfWork
from app.domain.services.audit_service import AuditService
from app.domain.services.config_service import (
    BASE_SERVICE_FEE_KEY,
    PARTNER_SHARE_PERCENTAGE_KEY,
    WALLET_HOLD_DAYS_KEY,
    checked_business_value,
    config_service,
)
from app.domain.services.inventory_service import InventoryService
from app.domain.services.ledger_outcome import LedgerOutcome
from app.domain.services.otp_service import OtpService
from app.domain.services.payment_service import PaymentService
from app.domain.services.wallet_service import WalletService
from app.state_machine.booking_states import (
    BookingState,
    TIMESTAMP_FIELDS,
    is_legal,
    triggers_ledger,
)
from app.state_machine.gates import Gate, requires_final_payment, requires_otp_handshake
from app.state_machine.state_mapping import normalize_state, to_legacy
from app.state_machine.transition_metadata import (
    ConsumedItem,
    InventoryConsumption,
    PartnerAssignment,
    TransitionMetadata,
)

logger = get_logger(__name__)

_CENTS = Decimal("0.01")


class OtpGate(Protocol):
    async def has_valid_handshake(self, uow: UnitOfWork, booking_id: int) -> bool: ...


class PaymentGate(Protocol):
    async def is_final_payment_verified(self, uow: UnitOfWork, booking_id: int) -> bool: ...

    async def generate_invoice(
        self, uow: UnitOfWork, booking_id: int, customer_id: int, partner_id: Optional[int]
    ) -> Any: ...


class ConfigSource(Protocol):
    async def get(self, db: AsyncSession, key: str, default: Any = None) -> Any: ...


class WalletLedgerWriter(Protocol):
    async def credit_hold(
        self, uow: UnitOfWork, partner_id: int, booking_id: int, amount, release_date: datetime
    ) -> LedgerOutcome: ...


class InventoryLedgerWriter(Protocol):
    async def deduct(
        self,
        uow: UnitOfWork,
        booking_id: int,
        items: Sequence[ConsumedItem],
        performed_by: Optional[int] = None,
    ) -> list[LedgerOutcome]: ...


def partner_earning(base_fee, share_percentage) -> Decimal:
    """Partner's cut of the service fee, rounded to cents"""
    fee = Decimal(str(base_fee))
    share = Decimal(str(share_percentage))
    return (fee * share / Decimal(100)).quantize(_CENTS, rounding=ROUND_HALF_UP)


class BookingTransitionService:
    """Coordinates booking state changes with their ledger side effects"""

    def __init__(
        self,
        db: AsyncSession,
        otp: Optional[OtpGate] = None,
        payments: Optional[PaymentGate] = None,
        config: Optional[ConfigSource] = None,
        wallets: Optional[WalletLedgerWriter] = None,
        inventory: Optional[InventoryLedgerWriter] = None,
        audit: Optional[AuditService] = None,
    ):
        self.db = db
        self.otp = otp or OtpService()
        self.payments = payments or PaymentService()
        self.config = config or config_service
        self.wallets = wallets or WalletService()
        self.inventory = inventory or InventoryService()
        self.audit = audit or AuditService()

    async def transition(
        self,
        booking_id: int,
        target_state,
        actor_id: Optional[int] = None,
        metadata: Optional[TransitionMetadata] = None,
    ) -> Booking:
        """
        Move a booking to target_state.

        Raises:
            BookingNotFoundError: no such booking
            PreconditionFailedError: OTP handshake, final payment or partner missing
            InvalidTransitionError: the state graph does not allow it
            InsufficientStockError / InventoryItemNotFoundError: consumption failed;
                nothing was written
        """
        try:
            target = BookingState(target_state)
        except ValueError:
            raise ValidationException(f"Unknown booking state: {target_state}", field="target_state")
        metadata = metadata or TransitionMetadata()

        async with UnitOfWork(self.db, "booking_transition") as uow:
            booking = await self._lock_booking(uow, booking_id)
            persisted_from = booking.status
            current = normalize_state(persisted_from)

            await self._check_gates(uow, booking, current, target, metadata)

            if not is_legal(current, target):
                raise InvalidTransitionError(booking.id, current.value, target.value)

            persisted_to = to_legacy(target)
            now = datetime.utcnow()

            assignment = metadata.find(PartnerAssignment)
            if target == BookingState.ASSIGNED and assignment:
                booking.partner_id = assignment.partner_id

            booking.status = persisted_to
            timestamp_field = TIMESTAMP_FIELDS.get(target)
            if timestamp_field:
                setattr(booking, timestamp_field, now)
            booking.updated_at = now

            ledger_summary: dict[str, Any] = {}
            if triggers_ledger(target):
                invoice = await self.payments.generate_invoice(
                    uow, booking.id, booking.customer_id, booking.partner_id
                )
                ledger_summary = await self._apply_completion_ledger(uow, booking, metadata, now)
                ledger_summary["invoice_number"] = getattr(invoice, "invoice_number", None)

            await self.audit.record(
                uow,
                entity_type="booking",
                entity_id=booking.id,
                action=AuditAction.STATE_CHANGE,
                actor_id=actor_id,
                from_state=current.value,
                to_state=target.value,
                details={
                    "persisted_from": persisted_from,
                    "persisted_to": persisted_to,
                    "metadata": metadata.to_audit(),
                    "ledger": ledger_summary,
                },
            )

        logger.info(
            "Booking transitioned",
            extra_data={
                "booking_id": booking_id,
                "from_state": current.value,
                "to_state": target.value,
                "persisted_to": persisted_to,
                "actor_id": actor_id,
            },
        )
        return booking

    async def _lock_booking(self, uow: UnitOfWork, booking_id: int) -> Booking:
        result = await uow.session.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise BookingNotFoundError(booking_id)
        return booking

    async def _check_gates(
        self,
        uow: UnitOfWork,
        booking: Booking,
        current: BookingState,
        target: BookingState,
        metadata: TransitionMetadata,
    ) -> None:
        if target == BookingState.ASSIGNED:
            if booking.partner_id is None and metadata.find(PartnerAssignment) is None:
                raise PreconditionFailedError(
                    "A partner must be provided to assign the booking",
                    booking_id=booking.id,
                    gate=Gate.PARTNER_ASSIGNED.value,
                )

        if requires_otp_handshake(current, target):
            if not await self.otp.has_valid_handshake(uow, booking.id):
                raise PreconditionFailedError(
                    "Work cannot start before the customer's handshake code is verified",
                    booking_id=booking.id,
                    gate=Gate.OTP_HANDSHAKE.value,
                )

        if requires_final_payment(current, target):
            if not await self.payments.is_final_payment_verified(uow, booking.id):
                raise PreconditionFailedError(
                    "Final payment has not been verified",
                    booking_id=booking.id,
                    gate=Gate.FINAL_PAYMENT.value,
                )
            if booking.partner_id is None:
                raise PreconditionFailedError(
                    "Booking has no assigned partner to credit",
                    booking_id=booking.id,
                    gate=Gate.PARTNER_ASSIGNED.value,
                )

    async def _apply_completion_ledger(
        self,
        uow: UnitOfWork,
        booking: Booking,
        metadata: TransitionMetadata,
        now: datetime,
    ) -> dict[str, Any]:
        base_fee = await self._business_number(uow, BASE_SERVICE_FEE_KEY, settings.BASE_SERVICE_FEE)
        share = await self._business_number(
            uow, PARTNER_SHARE_PERCENTAGE_KEY, settings.PARTNER_SHARE_PERCENTAGE
        )
        hold_days = await self._business_number(uow, WALLET_HOLD_DAYS_KEY, settings.WALLET_HOLD_DAYS)

        earning = partner_earning(base_fee, share)
        booking.commission_amount = (Decimal(str(base_fee)) - earning).quantize(_CENTS)
        release_date = now + timedelta(days=int(hold_days))

        summary: dict[str, Any] = {
            "partner_earning": str(earning),
            "commission": str(booking.commission_amount),
        }
        if earning > 0:
            credit = await self.wallets.credit_hold(
                uow, booking.partner_id, booking.id, earning, release_date
            )
            summary["release_date"] = release_date.isoformat()
            summary["hold_credit_already_processed"] = credit.already_processed
        else:
            # zero share: the whole fee is commission and there is nothing to hold
            summary["hold_credit_skipped"] = True

        consumption = metadata.find(InventoryConsumption)
        if consumption:
            outcomes = await self.inventory.deduct(
                uow, booking.id, consumption.items, performed_by=booking.partner_id
            )
            summary["inventory_lines"] = len(outcomes)
        return summary

    async def _business_number(self, uow: UnitOfWork, key: str, default: Any) -> Any:
        value = await self.config.get(uow.session, key, default)
        return checked_business_value(key, value, default)
