"""
Ledger Service - Wallet Balance and Immutable Transaction Log

Every balance change goes through `credit` or `debit`:
1. Lock the user row (SELECT ... FOR UPDATE)
2. Compute the new balance from the locked value
3. Insert the WalletTransaction inside a savepoint; the unique constraints on
   order_id / withdrawal_id turn a replay into DuplicateLedgerEntryError
4. Write the new balance on the user

Neither method commits. The caller's transaction owns atomicity, so the ledger
entry lands together with the order or withdrawal status change that caused it.
"""
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DuplicateLedgerEntryError,
    ErrorCode,
    InsufficientFundsError,
    UserNotFoundError,
    ValidationException,
)
from app.core.logging import get_logger
from app.db.models.user import User
from app.db.models.wallet_transaction import WalletTransaction, TransactionType
from app.domain.services.settlement import round_money

logger = get_logger(__name__)

WALLET_HISTORY_LIMIT = 20


class LedgerService:
    """Service for wallet balance movements"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _lock_user(self, user_id: int) -> User:
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def _record(
        self,
        user: User,
        tx_type: TransactionType,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
        order_id: int | None,
        withdrawal_id: int | None,
        note: str | None,
    ) -> WalletTransaction:
        entry = WalletTransaction(
            user_id=user.id,
            type=tx_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            order_id=order_id,
            withdrawal_id=withdrawal_id,
            note=note,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(entry)
        except IntegrityError:
            logger.warning(
                "Ledger entry already exists for source",
                extra_data={
                    "user_id": user.id,
                    "type": tx_type.value,
                    "order_id": order_id,
                    "withdrawal_id": withdrawal_id,
                }
            )
            raise DuplicateLedgerEntryError(user.id, order_id=order_id, withdrawal_id=withdrawal_id)

        # Balance is written only once the entry insert has succeeded
        user.wallet_balance = balance_after
        await self.db.flush()

        logger.info(
            f"Wallet {tx_type.value.lower()} recorded",
            extra_data={
                "user_id": user.id,
                "transaction_id": entry.id,
                "amount": str(amount),
                "balance_after": str(balance_after),
                "order_id": order_id,
                "withdrawal_id": withdrawal_id,
            }
        )
        return entry

    async def credit(
        self,
        user_id: int,
        amount: Decimal,
        order_id: int | None = None,
        note: str | None = None,
    ) -> WalletTransaction:
        """Add `amount` to the user's balance. Raises DuplicateLedgerEntryError on replay."""
        amount = round_money(amount)
        if amount < 0:
            raise ValidationException(
                "Credit amount cannot be negative", field="amount", error_code=ErrorCode.INVALID_AMOUNT
            )

        user = await self._lock_user(user_id)
        balance_before = round_money(user.wallet_balance or 0)
        balance_after = round_money(balance_before + amount)

        return await self._record(
            user, TransactionType.CREDIT, amount, balance_before, balance_after, order_id, None, note
        )

    async def debit(
        self,
        user_id: int,
        amount: Decimal,
        withdrawal_id: int | None = None,
        note: str | None = None,
    ) -> WalletTransaction:
        """Subtract `amount` from the user's balance.

        Raises InsufficientFundsError (payout phase) without touching anything
        when the locked balance does not cover the amount.
        """
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationException(
                "Debit amount must be positive", field="amount", error_code=ErrorCode.INVALID_AMOUNT
            )

        user = await self._lock_user(user_id)
        balance_before = round_money(user.wallet_balance or 0)
        if balance_before < amount:
            logger.warning(
                "Insufficient funds for debit",
                extra_data={
                    "user_id": user_id,
                    "balance": str(balance_before),
                    "amount": str(amount),
                    "withdrawal_id": withdrawal_id,
                }
            )
            raise InsufficientFundsError(
                user_id, balance_before, amount, phase=InsufficientFundsError.PHASE_PAYOUT
            )
        balance_after = round_money(balance_before - amount)

        return await self._record(
            user, TransactionType.DEBIT, amount, balance_before, balance_after, None, withdrawal_id, note
        )

    async def get_balance(self, user_id: int) -> Decimal:
        """Current wallet balance"""
        result = await self.db.execute(
            select(User.wallet_balance).where(User.id == user_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise UserNotFoundError(user_id)
        return round_money(balance)

    async def get_history(self, user_id: int, limit: int = WALLET_HISTORY_LIMIT) -> list[WalletTransaction]:
        """Most recent transactions first"""
        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_for_order(self, order_id: int) -> WalletTransaction | None:
        result = await self.db.execute(
            select(WalletTransaction).where(WalletTransaction.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def find_for_withdrawal(self, withdrawal_id: int) -> WalletTransaction | None:
        result = await self.db.execute(
            select(WalletTransaction).where(WalletTransaction.withdrawal_id == withdrawal_id)
        )
        return result.scalar_one_or_none()
