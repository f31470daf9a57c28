"""
Admin API Routes - withdrawal review and driver KYC decisions
"""
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.dependencies.auth import require_admin
from app.api.dependencies.services import get_kyc_review_service, get_withdrawal_service
from app.api.routes.schemas import (
    PaginatedWithdrawalsResponse,
    WithdrawalResponse,
    withdrawal_to_response,
)
from app.core.exceptions import ValidationException
from app.db.models.user import User
from app.db.models.withdrawal import WithdrawalStatus
from app.domain.services.kyc_review_service import KycReviewService
from app.domain.services.pagination import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from app.domain.services.withdrawal_service import ReviewAction, WithdrawalService

router = APIRouter()


# ==================== Schemas ====================


class WithdrawalReview(BaseModel):
    action: ReviewAction
    rejection_reason: Optional[str] = Field(None, max_length=200)
    payment_ref: Optional[str] = Field(None, max_length=120)


class WithdrawalReviewResponse(BaseModel):
    withdrawal: WithdrawalResponse
    transaction_id: Optional[int] = None
    already_processed: bool = False


class KycAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class KycDecision(BaseModel):
    action: KycAction
    reason: Optional[str] = Field(None, max_length=200)


class KycDecisionResponse(BaseModel):
    user_id: int
    kyc_status: str
    kyc_rejection_reason: Optional[str] = None
    changed: bool


# ==================== Withdrawals ====================


@router.get(
    "/withdrawals",
    response_model=PaginatedWithdrawalsResponse,
    summary="List withdrawals",
    description="All withdrawal requests, optionally filtered by status.",
)
async def list_withdrawals(
    status_filter: Optional[WithdrawalStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    admin: User = Depends(require_admin),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    result = await service.list_all(status_filter, page, limit)
    return PaginatedWithdrawalsResponse(
        items=[withdrawal_to_response(w) for w in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.patch(
    "/withdrawals/{withdrawal_id}",
    response_model=WithdrawalReviewResponse,
    summary="Review a withdrawal",
    description=(
        "APPROVE and REJECT apply to PENDING requests. MARK_PAID debits the "
        "driver's wallet and requires a payment reference."
    ),
)
async def review_withdrawal(
    withdrawal_id: int,
    data: WithdrawalReview,
    admin: User = Depends(require_admin),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    result = await service.review(
        withdrawal_id,
        data.action,
        admin_id=admin.id,
        rejection_reason=data.rejection_reason,
        payment_ref=data.payment_ref,
    )
    return WithdrawalReviewResponse(
        withdrawal=withdrawal_to_response(result.withdrawal),
        transaction_id=result.transaction.id if result.transaction else None,
        already_processed=result.already_processed,
    )


# ==================== KYC ====================


@router.patch(
    "/users/{user_id}/kyc",
    response_model=KycDecisionResponse,
    summary="Approve or reject a driver's KYC",
)
async def review_kyc(
    user_id: int,
    data: KycDecision,
    admin: User = Depends(require_admin),
    service: KycReviewService = Depends(get_kyc_review_service),
):
    if data.action == KycAction.APPROVE:
        result = await service.approve(user_id, admin.id)
    elif data.action == KycAction.REJECT:
        result = await service.reject(user_id, admin.id, data.reason or "")
    else:
        raise ValidationException(f"Unknown KYC action: {data.action}", field="action")

    return KycDecisionResponse(
        user_id=result.user.id,
        kyc_status=result.user.kyc_status.value,
        kyc_rejection_reason=result.user.kyc_rejection_reason,
        changed=result.changed,
    )
