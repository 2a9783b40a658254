"""
Inventory Service - stock levels and the inventory ledger

Every stock change writes an InventoryLedger row with before/after stock
and the unit cost at the moment of the change. Consumption is idempotent
per (booking, item).
"""
from datetime import datetime
from decimal import Decimal
from functools import partial
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InsufficientStockError,
    InventoryItemNotFoundError,
    ValidationException,
)
from app.core.logging import get_logger
from app.db.models.audit_log import AuditAction
from app.db.models.inventory_item import InventoryItem
from app.db.models.inventory_ledger import InventoryLedger, InventoryEntryType
from app.db.unit_of_work import UnitOfWork
from app.domain.services import alert_service
from app.domain.services.audit_service import AuditService
from app.domain.services.ledger_outcome import LedgerOutcome
from app.domain.services.wallet_service import to_money
from app.state_machine.transition_metadata import ConsumedItem

logger = get_logger(__name__)


class InventoryService:

    def __init__(self, audit: Optional[AuditService] = None):
        self.audit = audit or AuditService()

    async def _lock_item(self, uow: UnitOfWork, item_code: str) -> InventoryItem:
        result = await uow.session.execute(
            select(InventoryItem)
            .where(InventoryItem.item_code == item_code)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise InventoryItemNotFoundError(item_code)
        return item

    async def deduct(
        self,
        uow: UnitOfWork,
        booking_id: int,
        items: Sequence[ConsumedItem],
        performed_by: Optional[int] = None,
    ) -> List[LedgerOutcome]:
        """
        Consume stock for a booking.

        Returns one LedgerOutcome per requested line, in request order.
        Raises InventoryItemNotFoundError / InsufficientStockError; the
        caller's unit of work then rolls back every line of the call.
        """
        outcomes: dict[str, LedgerOutcome] = {}

        # fixed lock order across concurrent bookings
        for line in sorted(items, key=lambda line: line.item_code):
            item = await self._lock_item(uow, line.item_code)

            existing_result = await uow.session.execute(
                select(InventoryLedger).where(
                    InventoryLedger.booking_id == booking_id,
                    InventoryLedger.item_id == item.id,
                    InventoryLedger.entry_type == InventoryEntryType.CONSUMPTION,
                )
            )
            existing = existing_result.scalar_one_or_none()
            if existing:
                logger.info(
                    "Consumption already recorded for booking",
                    extra_data={"booking_id": booking_id, "item_code": item.item_code},
                )
                outcomes[line.item_code] = LedgerOutcome(entry=existing, already_processed=True)
                continue

            if item.current_stock < line.quantity:
                raise InsufficientStockError(item.item_code, item.current_stock, line.quantity)

            stock_before = item.current_stock
            item.current_stock = stock_before - line.quantity
            item.updated_at = datetime.utcnow()

            entry = InventoryLedger(
                item_id=item.id,
                booking_id=booking_id,
                entry_type=InventoryEntryType.CONSUMPTION,
                quantity=-line.quantity,
                unit_cost_snapshot=item.unit_cost,
                total_cost=to_money(item.unit_cost * line.quantity),
                performed_by=performed_by,
                stock_before=stock_before,
                stock_after=item.current_stock,
                notes=f"Consumed for booking #{booking_id}",
            )
            uow.session.add(entry)
            outcomes[line.item_code] = LedgerOutcome(entry=entry)

            if item.current_stock <= item.min_stock_level:
                uow.after_commit(
                    partial(
                        alert_service.publish_low_stock,
                        item_code=item.item_code,
                        item_name=item.item_name,
                        current_stock=item.current_stock,
                        min_stock_level=item.min_stock_level,
                        booking_id=booking_id,
                    )
                )

        await uow.flush()

        logger.info(
            "Inventory consumed",
            extra_data={
                "booking_id": booking_id,
                "items": [line.item_code for line in items],
                "already_processed": [
                    code for code, outcome in outcomes.items() if outcome.already_processed
                ],
            },
        )
        return [outcomes[line.item_code] for line in items]

    async def restock(
        self,
        uow: UnitOfWork,
        item_code: str,
        quantity: int,
        performed_by: Optional[int] = None,
        unit_cost=None,
        notes: Optional[str] = None,
    ) -> InventoryLedger:
        """Add stock; a given unit_cost applies to this restock and future consumption."""
        if quantity <= 0:
            raise ValidationException("Restock quantity must be positive", field="quantity")

        item = await self._lock_item(uow, item_code)

        if unit_cost is not None:
            unit_cost = to_money(unit_cost)
            if unit_cost < 0:
                raise ValidationException("Unit cost cannot be negative", field="unit_cost")
            item.unit_cost = unit_cost

        stock_before = item.current_stock
        item.current_stock = stock_before + quantity
        item.updated_at = datetime.utcnow()

        entry = InventoryLedger(
            item_id=item.id,
            booking_id=None,
            entry_type=InventoryEntryType.RESTOCK,
            quantity=quantity,
            unit_cost_snapshot=item.unit_cost,
            total_cost=to_money(Decimal(item.unit_cost) * quantity),
            performed_by=performed_by,
            stock_before=stock_before,
            stock_after=item.current_stock,
            notes=notes,
        )
        uow.session.add(entry)

        await self.audit.record(
            uow,
            entity_type="inventory_item",
            entity_id=item.item_code,
            action=AuditAction.INVENTORY_RESTOCK,
            actor_id=performed_by,
            details={
                "quantity": quantity,
                "stock_before": stock_before,
                "stock_after": item.current_stock,
                "unit_cost": str(item.unit_cost),
            },
        )

        logger.info(
            "Inventory restocked",
            extra_data={
                "item_code": item.item_code,
                "quantity": quantity,
                "stock_after": item.current_stock,
                "performed_by": performed_by,
            },
        )
        return entry

    async def list_low_stock(self, db: AsyncSession) -> List[InventoryItem]:
        result = await db.execute(
            select(InventoryItem)
            .where(
                InventoryItem.is_active.is_(True),
                InventoryItem.current_stock <= InventoryItem.min_stock_level,
            )
            .order_by(InventoryItem.current_stock, InventoryItem.item_code)
        )
        return list(result.scalars().all())

    async def get_item(self, db: AsyncSession, item_code: str) -> InventoryItem:
        result = await db.execute(
            select(InventoryItem).where(InventoryItem.item_code == item_code)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise InventoryItemNotFoundError(item_code)
        return item
