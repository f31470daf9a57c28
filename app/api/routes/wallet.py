"""
Wallet API Routes - balance, transaction history and withdrawal requests
"""
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies.auth import get_current_user, require_driver
from app.api.dependencies.services import get_ledger_service, get_withdrawal_service
from app.api.routes.schemas import (
    PaginatedWithdrawalsResponse,
    TransactionResponse,
    WithdrawalResponse,
    transaction_to_response,
    withdrawal_to_response,
)
from app.core.config import settings
from app.db.models.user import User
from app.db.models.withdrawal import WithdrawalStatus
from app.domain.services.ledger_service import WALLET_HISTORY_LIMIT, LedgerService
from app.domain.services.pagination import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from app.domain.services.withdrawal_service import WithdrawalService

router = APIRouter()


class WalletResponse(BaseModel):
    balance: float
    currency: str
    transactions: List[TransactionResponse]


class WithdrawalRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    bank_name: str = Field(..., min_length=2, max_length=60)
    account_name: str = Field(..., min_length=2, max_length=80)
    account_number: str = Field(..., min_length=8, max_length=20)


@router.get(
    "",
    response_model=WalletResponse,
    summary="Get my wallet",
    description=f"Current balance and the last {WALLET_HISTORY_LIMIT} transactions, newest first.",
)
async def get_wallet(
    user: User = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    balance = await ledger.get_balance(user.id)
    history = await ledger.get_history(user.id)
    return WalletResponse(
        balance=float(balance),
        currency=settings.DEFAULT_CURRENCY,
        transactions=[transaction_to_response(tx) for tx in history],
    )


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a withdrawal",
    description="The balance is checked but not debited until an admin marks the withdrawal paid.",
)
async def request_withdrawal(
    data: WithdrawalRequest,
    driver: User = Depends(require_driver),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    withdrawal = await service.request(
        user_id=driver.id,
        amount=data.amount,
        bank_name=data.bank_name,
        account_name=data.account_name,
        account_number=data.account_number,
    )
    return withdrawal_to_response(withdrawal)


@router.get(
    "/withdrawals",
    response_model=PaginatedWithdrawalsResponse,
    summary="List my withdrawals",
)
async def list_withdrawals(
    status_filter: Optional[WithdrawalStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    driver: User = Depends(require_driver),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    result = await service.list_for_user(driver.id, status_filter, page, limit)
    return PaginatedWithdrawalsResponse(
        items=[withdrawal_to_response(w) for w in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )
