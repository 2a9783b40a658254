"""
Inventory API Routes
"""
from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.db.unit_of_work import UnitOfWork
from app.domain.services.inventory_service import InventoryService

router = APIRouter()


class InventoryItemResponse(BaseModel):
    item_code: str
    item_name: str
    unit: str
    unit_cost: float
    current_stock: int
    min_stock_level: int

    class Config:
        from_attributes = True


class RestockRequest(BaseModel):
    quantity: int = Field(gt=0)
    performed_by: Optional[int] = None
    unit_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class RestockResponse(BaseModel):
    item_code: str
    quantity: int
    stock_before: int
    stock_after: int
    unit_cost_snapshot: float


@router.get(
    "/low-stock",
    response_model=List[InventoryItemResponse],
    summary="List items at or below their minimum stock",
)
async def list_low_stock(db: AsyncSession = Depends(get_db)):
    return await InventoryService().list_low_stock(db)


@router.post(
    "/{item_code}/restock",
    response_model=RestockResponse,
    summary="Restock an inventory item",
)
async def restock_item(
    item_code: str,
    request: RestockRequest,
    db: AsyncSession = Depends(get_db)
):
    async with UnitOfWork(db, "inventory_restock") as uow:
        entry = await InventoryService().restock(
            uow,
            item_code,
            request.quantity,
            performed_by=request.performed_by,
            unit_cost=request.unit_cost,
            notes=request.notes,
        )
    return RestockResponse(
        item_code=item_code,
        quantity=entry.quantity,
        stock_before=entry.stock_before,
        stock_after=entry.stock_after,
        unit_cost_snapshot=float(entry.unit_cost_snapshot),
    )
