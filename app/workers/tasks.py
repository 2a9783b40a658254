"""
Celery Tasks

Periodic maintenance around the ledgers: releasing matured wallet holds,
re-announcing inventory items that are still low on stock and purging
stale OTP codes.
"""
import asyncio
from contextlib import contextmanager

from app.workers.celery_app import celery_app
from app.db.database import get_task_session_factory
from app.core.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

# one low-stock alert per item per window
_LOW_STOCK_ALERT_THROTTLE_SECONDS = 6 * 3600


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            # the Redis singleton is bound to this loop; drop it before closing
            from app.core.redis_client import close_redis
            loop.run_until_complete(close_redis())
        except Exception as e:
            logger.warning(
                "Failed to close Redis at task end",
                extra_data={"error": str(e)},
            )
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@celery_app.task(name="app.workers.tasks.release_matured_wallet_holds")
def release_matured_wallet_holds() -> dict:
    """Move every hold whose release date has passed into available balance"""
    from app.domain.services.wallet_release_service import WalletReleaseService

    async def _release():
        async with get_task_session_factory() as session_factory:
            result = await WalletReleaseService(session_factory).release_due_holds()
            return result.to_dict()

    return run_async(_release())


@celery_app.task(name="app.workers.tasks.check_low_stock_items")
def check_low_stock_items() -> dict:
    """
    Periodic low-stock sweep.

    Consumption already alerts when it crosses the threshold; this catches
    items that stay low (or were edited directly) and re-announces them at
    most once per throttle window, using Redis SET NX EX.
    """
    from app.domain.services import alert_service
    from app.domain.services.inventory_service import InventoryService
    from app.core.redis_client import get_redis

    async def _check():
        async with get_task_session_factory() as session_factory:
            async with session_factory() as db:
                items = await InventoryService().list_low_stock(db)
                # plain values; the session closes before publishing
                low_items = [
                    (item.item_code, item.item_name, item.current_stock, item.min_stock_level)
                    for item in items
                ]

        redis = await get_redis()
        alerts_sent = 0
        for item_code, item_name, current_stock, min_stock_level in low_items:
            throttle_key = f"alert_throttle:low_stock:{item_code}"
            if not await redis.set(
                throttle_key, "1", nx=True, ex=_LOW_STOCK_ALERT_THROTTLE_SECONDS
            ):
                continue
            await alert_service.publish_low_stock(
                item_code=item_code,
                item_name=item_name,
                current_stock=current_stock,
                min_stock_level=min_stock_level,
            )
            alerts_sent += 1

        logger.info(
            "Low stock check finished",
            extra_data={"low_items": len(low_items), "alerts_sent": alerts_sent},
        )
        return {"low_items": len(low_items), "alerts_sent": alerts_sent}

    return run_async(_check())


@celery_app.task(name="app.workers.tasks.purge_expired_otps")
def purge_expired_otps() -> dict:
    """Daily cleanup of unverified OTP codes past their expiry plus the grace window"""
    from app.db.unit_of_work import UnitOfWork
    from app.domain.services.otp_service import OtpService

    async def _purge():
        async with get_task_session_factory() as session_factory:
            async with session_factory() as db:
                async with UnitOfWork(db, "otp_purge") as uow:
                    purged = await OtpService().purge_expired(uow)
        return {"purged": purged}

    return run_async(_purge())
