"""
Wallet Transaction Model - Immutable Ledger History
"""
import enum
from sqlalchemy import Column, Integer, DateTime, ForeignKey, String, Enum as SQLEnum, Numeric

from app.db.database import Base
from app.db.models.user import utcnow


class TransactionType(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class WalletTransaction(Base):
    """One balance movement. Rows are never updated or deleted."""

    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(SQLEnum(TransactionType), nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)  # Always positive, direction is in `type`
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)

    # At most one transaction per order and per withdrawal (replay guard)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=True)
    withdrawal_id = Column(Integer, ForeignKey("withdrawals.id"), unique=True, nullable=True)

    note = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
