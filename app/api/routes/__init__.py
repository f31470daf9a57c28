"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.orders import router as orders_router
from app.api.routes.driver import router as driver_router
from app.api.routes.wallet import router as wallet_router
from app.api.routes.admin import router as admin_router

router = APIRouter()

router.include_router(orders_router, prefix="/orders", tags=["orders"])
router.include_router(driver_router, prefix="/driver", tags=["driver"])
router.include_router(wallet_router, prefix="/wallet", tags=["wallet"])
router.include_router(admin_router, prefix="/admin", tags=["admin"])
