"""
Wallet API Routes
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.database import get_db
from app.db.models.wallet_ledger import WalletEntryType, WithdrawalMethod
from app.db.unit_of_work import UnitOfWork
from app.domain.services.config_service import (
    MIN_WALLET_REDEMPTION_KEY,
    checked_business_value,
    config_service,
)
from app.domain.services.wallet_service import WalletService

router = APIRouter()


class WalletResponse(BaseModel):
    partner_id: int
    balance_hold: float
    balance_available: float
    total_earned: float

    class Config:
        from_attributes = True


class LedgerEntryResponse(BaseModel):
    id: int
    booking_id: Optional[int]
    entry_type: WalletEntryType
    amount: float
    balance_hold_after: float
    balance_available_after: float
    release_date: Optional[datetime]
    is_released: bool
    description: str | None
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class WithdrawRequest(BaseModel):
    amount: float = Field(gt=0)
    method: WithdrawalMethod


@router.get(
    "/{partner_id}",
    response_model=WalletResponse,
    summary="Get a partner's wallet",
    description="Held and available balances. Reads are not locked and may lag a running transition.",
)
async def get_wallet(
    partner_id: int,
    db: AsyncSession = Depends(get_db)
):
    return await WalletService().get_wallet(db, partner_id)


@router.get(
    "/{partner_id}/history",
    response_model=List[LedgerEntryResponse],
    summary="Get wallet ledger history",
    description="Ledger entries for the partner, newest first.",
)
async def get_transaction_history(
    partner_id: int,
    limit: int = 20,
    db: AsyncSession = Depends(get_db)
):
    return await WalletService().get_ledger_history(db, partner_id, limit)


@router.post(
    "/{partner_id}/withdraw",
    response_model=LedgerEntryResponse,
    summary="Withdraw from the available balance",
    description="Pays out by bank or UPI. Held earnings cannot be withdrawn.",
)
async def withdraw(
    partner_id: int,
    request: WithdrawRequest,
    db: AsyncSession = Depends(get_db)
):
    minimum = checked_business_value(
        MIN_WALLET_REDEMPTION_KEY,
        await config_service.get(db, MIN_WALLET_REDEMPTION_KEY, settings.MIN_WALLET_REDEMPTION),
        settings.MIN_WALLET_REDEMPTION,
    )
    async with UnitOfWork(db, "wallet_withdraw") as uow:
        entry = await WalletService().withdraw(
            uow, partner_id, request.amount, request.method, min_amount=minimum
        )
    return entry
