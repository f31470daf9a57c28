"""
Domain Services
"""
from app.domain.services.capacity_service import CapacityService
from app.domain.services.kyc_review_service import KycReviewService
from app.domain.services.ledger_service import LedgerService
from app.domain.services.order_service import OrderService
from app.domain.services.settlement import SettlementConfig, calculate_settlement
from app.domain.services.withdrawal_service import WithdrawalService

__all__ = [
    "CapacityService",
    "KycReviewService",
    "LedgerService",
    "OrderService",
    "SettlementConfig",
    "calculate_settlement",
    "WithdrawalService",
]
