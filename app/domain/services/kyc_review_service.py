"""
KYC Review Service - admin approval / rejection of driver identity checks

Drivers cannot claim orders until their KYC status is APPROVED. The identity
provider call that moves a submission to PENDING happens outside this service.
"""
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AccessDeniedError,
    ErrorCode,
    UserNotFoundError,
    ValidationException,
)
from app.core.logging import get_logger
from app.db.models.user import User, KycStatus

logger = get_logger(__name__)

KYC_REJECTION_REASON_LENGTH = (3, 200)


@dataclass
class KycReviewResult:
    user: User
    changed: bool


class KycReviewService:
    """Admin decisions on driver KYC"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_driver(self, user_id: int) -> User:
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError(user_id)
        if not user.is_driver:
            raise AccessDeniedError(
                f"User {user_id} is not a driver",
                error_code=ErrorCode.INVALID_USER_ROLE,
            )
        return user

    async def approve(self, user_id: int, admin_id: int) -> KycReviewResult:
        user = await self._get_driver(user_id)
        if user.kyc_status == KycStatus.APPROVED:
            logger.info("KYC already approved", extra_data={"user_id": user_id, "admin_id": admin_id})
            return KycReviewResult(user=user, changed=False)

        user.kyc_status = KycStatus.APPROVED
        user.kyc_rejection_reason = None
        await self.db.commit()

        logger.info("KYC approved", extra_data={"user_id": user_id, "admin_id": admin_id})
        return KycReviewResult(user=user, changed=True)

    async def reject(self, user_id: int, admin_id: int, reason: str) -> KycReviewResult:
        reason = (reason or "").strip()
        low, high = KYC_REJECTION_REASON_LENGTH
        if not low <= len(reason) <= high:
            raise ValidationException(
                f"rejection_reason must be between {low} and {high} characters",
                field="rejection_reason",
            )

        user = await self._get_driver(user_id)
        user.kyc_status = KycStatus.REJECTED
        user.kyc_rejection_reason = reason
        await self.db.commit()

        logger.info(
            "KYC rejected",
            extra_data={"user_id": user_id, "admin_id": admin_id},
        )
        return KycReviewResult(user=user, changed=True)

