"""
Service factories wired to application settings
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.database import get_db
from app.domain.services.capacity_service import CapacityService
from app.domain.services.kyc_review_service import KycReviewService
from app.domain.services.ledger_service import LedgerService
from app.domain.services.order_service import OrderService
from app.domain.services.settlement import SettlementConfig
from app.domain.services.withdrawal_service import WithdrawalService


def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(
        db,
        SettlementConfig.from_settings(),
        max_code_attempts=settings.ORDER_CODE_MAX_ATTEMPTS,
    )


def get_capacity_service(db: AsyncSession = Depends(get_db)) -> CapacityService:
    return CapacityService(db)


def get_ledger_service(db: AsyncSession = Depends(get_db)) -> LedgerService:
    return LedgerService(db)


def get_withdrawal_service(db: AsyncSession = Depends(get_db)) -> WithdrawalService:
    return WithdrawalService(db, min_amount=settings.MIN_WITHDRAWAL_AMOUNT)


def get_kyc_review_service(db: AsyncSession = Depends(get_db)) -> KycReviewService:
    return KycReviewService(db)
