"""
Database Models
"""
from app.db.models.booking import Booking
from app.db.models.partner_wallet import PartnerWallet
from app.db.models.wallet_ledger import WalletLedger
from app.db.models.inventory_item import InventoryItem
from app.db.models.inventory_ledger import InventoryLedger
from app.db.models.audit_log import AuditLog
from app.db.models.platform_config import PlatformConfig
from app.db.models.service_otp import ServiceOtp
from app.db.models.payment_transaction import PaymentTransaction
from app.db.models.invoice import Invoice

__all__ = [
    "Booking",
    "PartnerWallet",
    "WalletLedger",
    "InventoryItem",
    "InventoryLedger",
    "AuditLog",
    "PlatformConfig",
    "ServiceOtp",
    "PaymentTransaction",
    "Invoice",
]
