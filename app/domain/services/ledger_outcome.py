"""
Result of an idempotent ledger write.
"""
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class LedgerOutcome:
    """The ledger entry for an operation, and whether it already existed.

    already_processed=True means the call hit its idempotency key and
    changed nothing; `entry` is the row written by the earlier call.
    """

    entry: Any
    already_processed: bool = False
