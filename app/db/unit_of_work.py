"""
Unit of Work: explicit atomic scope for ledger-affecting operations.

Every service call that writes money, stock, booking state or audit rows
receives the UnitOfWork as its first argument, so the boundary of
atomicity is visible in the signature instead of hiding in an ambient
session. Usage:

    async with UnitOfWork(session, "booking_transition") as uow:
        await wallet_service.credit_hold(uow, ...)
        await inventory_service.deduct(uow, ...)
    # committed here, or rolled back if anything above raised

Row exclusivity comes from SELECT ... FOR UPDATE in the services; this
class bounds how long those locks may be waited on (PostgreSQL only) and
turns a timeout into a retryable LockTimeoutError.
"""
from typing import Awaitable, Callable

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import LockTimeoutError
from app.core.logging import get_logger

logger = get_logger(__name__)

# lock_not_available, query_canceled (statement_timeout)
_TIMEOUT_SQLSTATES = {"55P03", "57014"}

AfterCommitCallback = Callable[[], Awaitable[None]]


def is_lock_timeout(exc: BaseException) -> bool:
    """True when a DB error is a lock-wait or statement timeout."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in _TIMEOUT_SQLSTATES


class UnitOfWork:
    """Commit-or-rollback scope over one AsyncSession"""

    def __init__(self, session: AsyncSession, operation: str = "unit_of_work"):
        self.session = session
        self.operation = operation
        self._after_commit: list[AfterCommitCallback] = []

    async def __aenter__(self) -> "UnitOfWork":
        if self.session.bind is not None and self.session.bind.dialect.name == "postgresql":
            # SET LOCAL only lives until the end of the current transaction
            await self.session.execute(
                text(f"SET LOCAL lock_timeout = {int(settings.DB_LOCK_TIMEOUT_MS)}")
            )
            await self.session.execute(
                text(f"SET LOCAL statement_timeout = {int(settings.DB_STATEMENT_TIMEOUT_MS)}")
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            try:
                await self.session.commit()
            except Exception as commit_error:
                await self.session.rollback()
                self._after_commit.clear()
                self._raise_translated(commit_error)
                raise
            await self._run_after_commit()
            return False

        await self.session.rollback()
        self._after_commit.clear()
        logger.warning(
            "Unit of work rolled back",
            extra_data={
                "operation": self.operation,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        self._raise_translated(exc)
        return False

    def _raise_translated(self, exc: BaseException) -> None:
        if is_lock_timeout(exc):
            raise LockTimeoutError(self.operation, str(exc)) from exc

    def after_commit(self, callback: AfterCommitCallback) -> None:
        """Register a coroutine factory to run only if the unit of work commits."""
        self._after_commit.append(callback)

    async def flush(self) -> None:
        await self.session.flush()

    async def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                await callback()
            except Exception as e:
                # the business operation is already committed
                logger.error(
                    "After-commit callback failed",
                    extra_data={"operation": self.operation, "error": str(e)},
                    exc_info=True,
                )
