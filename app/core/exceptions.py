"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.
Every exception carries a retry policy so callers can tell "fix the request"
apart from "retry as-is" and "wait for an external change".
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    LOCK_TIMEOUT = "ERR_1007"

    # Booking errors (2xxx)
    BOOKING_NOT_FOUND = "ERR_2001"

    # Wallet errors (4xxx)
    WALLET_NOT_FOUND = "ERR_4001"
    INSUFFICIENT_BALANCE = "ERR_4002"
    INVALID_AMOUNT = "ERR_4003"
    LEDGER_ENTRY_NOT_FOUND = "ERR_4005"

    # Inventory errors (5xxx)
    INVENTORY_ITEM_NOT_FOUND = "ERR_5001"
    INSUFFICIENT_STOCK = "ERR_5002"

    # State machine errors (6xxx)
    INVALID_STATE_TRANSITION = "ERR_6001"
    PRECONDITION_FAILED = "ERR_6002"


class RetryPolicy(str, Enum):
    """How a caller may react to a failure"""

    FIX_INPUT = "fix_input"
    RETRY_SAFE = "retry_safe"
    NEEDS_EXTERNAL_CHANGE = "needs_external_change"


class AppException(Exception):
    """Base exception for all application errors"""

    retry_policy: RetryPolicy = RetryPolicy.FIX_INPUT

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "retry_policy": self.retry_policy.value,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class BookingNotFoundError(NotFoundException):
    def __init__(self, booking_id: int):
        super().__init__("Booking", booking_id, ErrorCode.BOOKING_NOT_FOUND)


class WalletNotFoundError(NotFoundException):
    def __init__(self, partner_id: int):
        super().__init__("Wallet", partner_id, ErrorCode.WALLET_NOT_FOUND)


class LedgerEntryNotFoundError(NotFoundException):
    def __init__(self, entry_id: int):
        super().__init__("Ledger entry", entry_id, ErrorCode.LEDGER_ENTRY_NOT_FOUND)


class WalletException(AppException):
    """Base exception for wallet-related errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        partner_id: int | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if partner_id:
            self.details["partner_id"] = partner_id


class InvalidAmountError(WalletException):
    """Raised for a zero, negative or below-minimum wallet amount"""

    def __init__(self, message: str, amount: Any, partner_id: int | None = None, minimum: Any = None):
        details = {"amount": str(amount)}
        if minimum is not None:
            details["minimum"] = str(minimum)
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_AMOUNT,
            partner_id=partner_id,
            details=details
        )


class InsufficientBalanceError(WalletException):
    """Raised when a withdrawal exceeds the available balance"""

    retry_policy = RetryPolicy.NEEDS_EXTERNAL_CHANGE

    def __init__(self, partner_id: int, balance_available: Any, requested: Any):
        super().__init__(
            message=f"Insufficient available balance for partner {partner_id}",
            error_code=ErrorCode.INSUFFICIENT_BALANCE,
            partner_id=partner_id,
            details={
                "balance_available": str(balance_available),
                "requested": str(requested),
            }
        )


class InventoryItemNotFoundError(NotFoundException):
    def __init__(self, item_code: str):
        super().__init__("Inventory item", item_code, ErrorCode.INVENTORY_ITEM_NOT_FOUND)


class InvalidTransitionError(AppException):
    """Raised when the booking state graph does not allow the transition"""

    def __init__(self, booking_id: int, current_state: str, target_state: str):
        super().__init__(
            message=f"Invalid transition from '{current_state}' to '{target_state}'",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
            status_code=409,
            details={
                "booking_id": booking_id,
                "current_state": current_state,
                "target_state": target_state,
            }
        )


class PreconditionFailedError(AppException):
    """Raised when a gate (OTP handshake, final payment, partner) is not satisfied"""

    retry_policy = RetryPolicy.NEEDS_EXTERNAL_CHANGE

    def __init__(
        self,
        message: str,
        booking_id: int,
        gate: str,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.PRECONDITION_FAILED,
            status_code=412,
            details=details
        )
        self.details["booking_id"] = booking_id
        self.details["gate"] = gate


class InsufficientStockError(AppException):
    """Raised when an inventory item cannot cover the requested quantity"""

    retry_policy = RetryPolicy.NEEDS_EXTERNAL_CHANGE

    def __init__(self, item_code: str, current_stock: int, requested: int):
        super().__init__(
            message=f"Insufficient stock for item {item_code}",
            error_code=ErrorCode.INSUFFICIENT_STOCK,
            status_code=409,
            details={
                "item_code": item_code,
                "current_stock": current_stock,
                "requested": requested,
            }
        )


class LockTimeoutError(AppException):
    """Raised when a row lock or statement exceeded its bounded wait"""

    retry_policy = RetryPolicy.RETRY_SAFE

    def __init__(self, operation: str, error: str):
        super().__init__(
            message=f"Timed out waiting for database during {operation}",
            error_code=ErrorCode.LOCK_TIMEOUT,
            status_code=503,
            details={"operation": operation, "error": error}
        )
