"""
Domain Services
"""
from app.domain.services.audit_service import AuditService
from app.domain.services.config_service import ConfigService, config_service
from app.domain.services.ledger_outcome import LedgerOutcome
from app.domain.services.wallet_service import WalletService
from app.domain.services.inventory_service import InventoryService
from app.domain.services.otp_service import OtpService
from app.domain.services.payment_service import PaymentService
from app.domain.services.booking_transition_service import BookingTransitionService
from app.domain.services.wallet_release_service import WalletReleaseService, ReleaseSweepResult

__all__ = [
    "AuditService",
    "ConfigService",
    "config_service",
    "LedgerOutcome",
    "WalletService",
    "InventoryService",
    "OtpService",
    "PaymentService",
    "BookingTransitionService",
    "WalletReleaseService",
    "ReleaseSweepResult",
]
