"""
Payment Service - payment verification and invoicing for bookings

Gateway callbacks are recorded as PaymentTransaction rows; the booking
transition only reads them.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from app.core.logging import get_logger
from app.db.models.booking import Booking
from app.db.models.invoice import Invoice
from app.db.models.payment_transaction import PaymentTransaction, PaymentKind, PaymentStatus
from app.db.unit_of_work import UnitOfWork
from app.domain.services.wallet_service import to_money

logger = get_logger(__name__)


def invoice_number_for(booking_id: int, issued_at: datetime) -> str:
    return f"INV-{issued_at:%Y%m%d}-{booking_id:06d}"


class PaymentService:

    async def record_payment(
        self,
        uow: UnitOfWork,
        booking_id: int,
        kind: PaymentKind,
        amount,
        status: PaymentStatus = PaymentStatus.CAPTURED,
        gateway_reference: Optional[str] = None,
    ) -> PaymentTransaction:
        """Store a gateway payment event"""
        transaction = PaymentTransaction(
            booking_id=booking_id,
            kind=kind,
            status=status,
            amount=to_money(amount),
            gateway_reference=gateway_reference,
            verified_at=datetime.utcnow() if status == PaymentStatus.CAPTURED else None,
        )
        uow.session.add(transaction)
        await uow.flush()
        logger.info(
            "Payment recorded",
            extra_data={"booking_id": booking_id, "kind": kind.value, "status": status.value},
        )
        return transaction

    async def is_final_payment_verified(self, uow: UnitOfWork, booking_id: int) -> bool:
        result = await uow.session.execute(
            select(PaymentTransaction.id)
            .where(
                PaymentTransaction.booking_id == booking_id,
                PaymentTransaction.kind == PaymentKind.FINAL,
                PaymentTransaction.status == PaymentStatus.CAPTURED,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def generate_invoice(
        self,
        uow: UnitOfWork,
        booking_id: int,
        customer_id: int,
        partner_id: Optional[int],
    ) -> Invoice:
        """One invoice per booking; a repeat call returns the existing one."""
        result = await uow.session.execute(
            select(Invoice).where(Invoice.booking_id == booking_id)
        )
        invoice = result.scalar_one_or_none()
        if invoice:
            return invoice

        booking = await uow.session.get(Booking, booking_id)
        now = datetime.utcnow()
        invoice = Invoice(
            invoice_number=invoice_number_for(booking_id, now),
            booking_id=booking_id,
            customer_id=customer_id,
            partner_id=partner_id,
            amount=booking.total_amount if booking else None,
        )
        uow.session.add(invoice)
        await uow.flush()

        logger.info(
            "Invoice generated",
            extra_data={"booking_id": booking_id, "invoice_number": invoice.invoice_number},
        )
        return invoice
