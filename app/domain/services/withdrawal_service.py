"""
Withdrawal Service - Driver Payout Requests and Admin Review

A request only checks the balance (soft check, nothing is reserved). Funds
leave the wallet when an admin marks the withdrawal PAID: the balance is
checked again at that point and the ledger debit, status change and payout
reference commit together.

Each review action is one conditional UPDATE keyed on the status the admin
saw, so two concurrent reviews cannot both succeed.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AccessDeniedError,
    ErrorCode,
    InsufficientFundsError,
    UserNotFoundError,
    ValidationException,
    WithdrawalConflictError,
    WithdrawalNotFoundError,
)
from app.core.logging import get_logger, log_async_operation
from app.db.models.user import User
from app.db.models.wallet_transaction import WalletTransaction
from app.db.models.withdrawal import Withdrawal, WithdrawalStatus
from app.domain.services.ledger_service import LedgerService
from app.domain.services.pagination import DEFAULT_PAGE_LIMIT, Page, fetch_page
from app.domain.services.settlement import round_money
from app.state_machine.states import ensure_transition

logger = get_logger(__name__)

DEFAULT_MIN_WITHDRAWAL_AMOUNT = Decimal("100")

# (min, max) lengths
BANK_NAME_LENGTH = (2, 60)
ACCOUNT_NAME_LENGTH = (2, 80)
ACCOUNT_NUMBER_LENGTH = (8, 20)
REJECTION_REASON_LENGTH = (3, 200)
PAYMENT_REF_LENGTH = (3, 120)


class ReviewAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    MARK_PAID = "MARK_PAID"


@dataclass
class ReviewResult:
    withdrawal: Withdrawal
    transaction: Optional[WalletTransaction] = None
    already_processed: bool = False


def _require_text(value: str | None, field: str, bounds: tuple[int, int]) -> str:
    text = (value or "").strip()
    low, high = bounds
    if not low <= len(text) <= high:
        raise ValidationException(
            f"{field} must be between {low} and {high} characters",
            field=field,
        )
    return text


class WithdrawalService:
    """Service for the withdrawal workflow"""

    def __init__(self, db: AsyncSession, min_amount: Decimal = DEFAULT_MIN_WITHDRAWAL_AMOUNT):
        self.db = db
        self.min_amount = round_money(min_amount)
        self.ledger = LedgerService(db)

    async def _get_withdrawal(self, withdrawal_id: int) -> Withdrawal:
        result = await self.db.execute(
            select(Withdrawal)
            .where(Withdrawal.id == withdrawal_id)
            .execution_options(populate_existing=True)
        )
        withdrawal = result.scalar_one_or_none()
        if not withdrawal:
            raise WithdrawalNotFoundError(withdrawal_id)
        return withdrawal

    # ==================== Request ====================

    @log_async_operation("request_withdrawal")
    async def request(
        self,
        user_id: int,
        amount: Decimal,
        bank_name: str,
        account_name: str,
        account_number: str,
    ) -> Withdrawal:
        """Create a PENDING withdrawal. The balance is checked but not debited."""
        amount = round_money(amount)
        if amount < self.min_amount:
            raise ValidationException(
                f"Minimum withdrawal amount is {self.min_amount}",
                field="amount",
                details={"min_amount": float(self.min_amount)},
                error_code=ErrorCode.INVALID_AMOUNT,
            )
        bank_name = _require_text(bank_name, "bank_name", BANK_NAME_LENGTH)
        account_name = _require_text(account_name, "account_name", ACCOUNT_NAME_LENGTH)
        account_number = _require_text(account_number, "account_number", ACCOUNT_NUMBER_LENGTH)

        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError(user_id)
        if not user.is_driver:
            raise AccessDeniedError(
                "Only drivers can request withdrawals",
                error_code=ErrorCode.INVALID_USER_ROLE,
            )

        balance = await self.ledger.get_balance(user_id)
        if balance < amount:
            logger.warning(
                "Withdrawal request exceeds balance",
                extra_data={"user_id": user_id, "balance": str(balance), "amount": str(amount)},
            )
            raise InsufficientFundsError(
                user_id, balance, amount, phase=InsufficientFundsError.PHASE_REQUEST
            )

        withdrawal = Withdrawal(
            user_id=user_id,
            amount=amount,
            bank_name=bank_name,
            account_name=account_name,
            account_number=account_number,
            status=WithdrawalStatus.PENDING,
        )
        self.db.add(withdrawal)
        await self.db.commit()
        await self.db.refresh(withdrawal)

        logger.info(
            "Withdrawal requested",
            extra_data={"withdrawal_id": withdrawal.id, "user_id": user_id, "amount": str(amount)},
        )
        return withdrawal

    # ==================== Review ====================

    @log_async_operation("review_withdrawal")
    async def review(
        self,
        withdrawal_id: int,
        action: ReviewAction,
        admin_id: int,
        rejection_reason: str | None = None,
        payment_ref: str | None = None,
    ) -> ReviewResult:
        """Apply one admin decision to a withdrawal"""
        if action == ReviewAction.APPROVE:
            return await self._approve(withdrawal_id, admin_id)
        if action == ReviewAction.REJECT:
            reason = _require_text(rejection_reason, "rejection_reason", REJECTION_REASON_LENGTH)
            return await self._reject(withdrawal_id, admin_id, reason)
        if action == ReviewAction.MARK_PAID:
            ref = _require_text(payment_ref, "payment_ref", PAYMENT_REF_LENGTH)
            return await self._mark_paid(withdrawal_id, admin_id, ref)
        raise ValidationException(f"Unknown review action: {action}", field="action")

    async def _transition(
        self,
        withdrawal: Withdrawal,
        target: WithdrawalStatus,
        values: dict,
    ) -> None:
        """Conditional update keyed on the status the caller observed"""
        result = await self.db.execute(
            update(Withdrawal)
            .where(
                Withdrawal.id == withdrawal.id,
                Withdrawal.status == withdrawal.status,
            )
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Withdrawal review conflict",
                extra_data={
                    "withdrawal_id": withdrawal.id,
                    "expected_status": withdrawal.status.value,
                    "target_status": target.value,
                },
            )
            raise WithdrawalConflictError(withdrawal.id)

    async def _approve(self, withdrawal_id: int, admin_id: int) -> ReviewResult:
        withdrawal = await self._get_withdrawal(withdrawal_id)
        ensure_transition(withdrawal.status, WithdrawalStatus.APPROVED, withdrawal_id)

        await self._transition(
            withdrawal,
            WithdrawalStatus.APPROVED,
            {
                "reviewed_by_id": admin_id,
                "reviewed_at": datetime.now(timezone.utc),
                "rejection_reason": None,
            },
        )
        await self.db.commit()

        withdrawal = await self._get_withdrawal(withdrawal_id)
        logger.info("Withdrawal approved", extra_data={"withdrawal_id": withdrawal_id, "admin_id": admin_id})
        return ReviewResult(withdrawal=withdrawal)

    async def _reject(self, withdrawal_id: int, admin_id: int, reason: str) -> ReviewResult:
        withdrawal = await self._get_withdrawal(withdrawal_id)
        ensure_transition(withdrawal.status, WithdrawalStatus.REJECTED, withdrawal_id)

        await self._transition(
            withdrawal,
            WithdrawalStatus.REJECTED,
            {
                "reviewed_by_id": admin_id,
                "reviewed_at": datetime.now(timezone.utc),
                "rejection_reason": reason,
            },
        )
        await self.db.commit()

        withdrawal = await self._get_withdrawal(withdrawal_id)
        logger.info("Withdrawal rejected", extra_data={"withdrawal_id": withdrawal_id, "admin_id": admin_id})
        return ReviewResult(withdrawal=withdrawal)

    async def _mark_paid(self, withdrawal_id: int, admin_id: int, payment_ref: str) -> ReviewResult:
        withdrawal = await self._get_withdrawal(withdrawal_id)

        existing = await self.ledger.find_for_withdrawal(withdrawal_id)
        if existing:
            logger.warning(
                "Payout replay, withdrawal already debited",
                extra_data={"withdrawal_id": withdrawal_id, "transaction_id": existing.id},
            )
            return ReviewResult(withdrawal=withdrawal, transaction=existing, already_processed=True)

        ensure_transition(withdrawal.status, WithdrawalStatus.PAID, withdrawal_id)

        amount = round_money(withdrawal.amount)
        balance = await self.ledger.get_balance(withdrawal.user_id)
        if balance < amount:
            logger.warning(
                "Payout refused, balance no longer covers withdrawal",
                extra_data={
                    "withdrawal_id": withdrawal_id,
                    "user_id": withdrawal.user_id,
                    "balance": str(balance),
                    "amount": str(amount),
                },
            )
            raise InsufficientFundsError(
                withdrawal.user_id, balance, amount, phase=InsufficientFundsError.PHASE_PAYOUT
            )

        now = datetime.now(timezone.utc)
        try:
            await self._transition(
                withdrawal,
                WithdrawalStatus.PAID,
                {
                    "reviewed_by_id": admin_id,
                    "reviewed_at": now,
                    "paid_at": now,
                    "payment_ref": payment_ref,
                },
            )
            # Debit re-checks the balance under the user row lock
            transaction = await self.ledger.debit(
                withdrawal.user_id,
                amount,
                withdrawal_id=withdrawal_id,
                note=f"Withdrawal payout - ref: {payment_ref}",
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        withdrawal = await self._get_withdrawal(withdrawal_id)
        logger.info(
            "Withdrawal paid",
            extra_data={
                "withdrawal_id": withdrawal_id,
                "admin_id": admin_id,
                "user_id": withdrawal.user_id,
                "amount": str(amount),
                "transaction_id": transaction.id,
            },
        )
        return ReviewResult(withdrawal=withdrawal, transaction=transaction)

    # ==================== Listing ====================

    async def list_for_user(
        self,
        user_id: int,
        status: WithdrawalStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> Page[Withdrawal]:
        where = [Withdrawal.user_id == user_id]
        if status:
            where.append(Withdrawal.status == status)
        return await fetch_page(
            self.db, Withdrawal, where, [Withdrawal.created_at.desc(), Withdrawal.id.desc()], page, limit
        )

    async def list_all(
        self,
        status: WithdrawalStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> Page[Withdrawal]:
        where = []
        if status:
            where.append(Withdrawal.status == status)
        return await fetch_page(
            self.db, Withdrawal, where, [Withdrawal.created_at.desc(), Withdrawal.id.desc()], page, limit
        )
