"""
Wallet Release Service - periodic sweep moving matured holds to available

Each due entry is released in its own session and unit of work, so one
broken entry (missing wallet, lock timeout) is logged and skipped without
holding back the rest of the batch.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger, log_async_operation
from app.db.unit_of_work import UnitOfWork
from app.domain.services.wallet_service import WalletService

logger = get_logger(__name__)


@dataclass
class ReleaseSweepResult:
    due: int = 0
    released: int = 0
    skipped: int = 0
    failed_entry_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "due": self.due,
            "released": self.released,
            "skipped": self.skipped,
            "failed": len(self.failed_entry_ids),
            "failed_entry_ids": self.failed_entry_ids,
        }


class WalletReleaseService:

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        wallets: Optional[WalletService] = None,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.wallets = wallets or WalletService()
        self.batch_size = batch_size or settings.WALLET_RELEASE_BATCH_SIZE

    @log_async_operation("wallet_hold_release_sweep")
    async def release_due_holds(self, now: Optional[datetime] = None) -> ReleaseSweepResult:
        now = now or datetime.utcnow()
        result = ReleaseSweepResult()

        async with self.session_factory() as session:
            entry_ids = await self.wallets.find_due_holds(session, now, self.batch_size)
        result.due = len(entry_ids)

        for entry_id in entry_ids:
            try:
                async with self.session_factory() as session:
                    async with UnitOfWork(session, "wallet_hold_release") as uow:
                        release_entry = await self.wallets.release(uow, entry_id)
            except Exception as e:
                result.failed_entry_ids.append(entry_id)
                logger.error(
                    "Failed to release held earnings",
                    extra_data={"entry_id": entry_id, "error": str(e)},
                    exc_info=True,
                )
                continue

            if release_entry is None:
                result.skipped += 1
            else:
                result.released += 1

        logger.info("Wallet release sweep finished", extra_data=result.to_dict())
        return result
