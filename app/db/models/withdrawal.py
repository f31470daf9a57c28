"""
Withdrawal Model - Driver Payout Requests
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Numeric, ForeignKey

from app.db.database import Base
from app.db.models.user import utcnow


class WithdrawalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class Withdrawal(Base):
    """Payout request. Funds only leave the wallet when an admin marks it PAID."""

    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)

    # Bank details
    bank_name = Column(String(60), nullable=False)
    account_name = Column(String(80), nullable=False)
    account_number = Column(String(20), nullable=False)

    status = Column(SQLEnum(WithdrawalStatus), default=WithdrawalStatus.PENDING, nullable=False, index=True)
    rejection_reason = Column(String(200), nullable=True)
    payment_ref = Column(String(120), nullable=True)

    reviewed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
