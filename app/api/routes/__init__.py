"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.bookings import router as bookings_router
from app.api.routes.wallets import router as wallets_router
from app.api.routes.inventory import router as inventory_router

router = APIRouter()

router.include_router(bookings_router, prefix="/bookings", tags=["bookings"])
router.include_router(wallets_router, prefix="/wallets", tags=["wallets"])
router.include_router(inventory_router, prefix="/inventory", tags=["inventory"])
