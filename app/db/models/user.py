"""
User Model - Customers, Drivers and Admins
"""
import enum
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Boolean, Numeric, Text

from app.core.config import settings
from app.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_max_active_orders() -> int:
    return settings.DEFAULT_MAX_ACTIVE_ORDERS


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    RIDER = "RIDER"
    TRUCK_DRIVER = "TRUCK_DRIVER"
    WASTE_DRIVER = "WASTE_DRIVER"
    ADMIN = "ADMIN"


DRIVER_ROLES = frozenset({UserRole.RIDER, UserRole.TRUCK_DRIVER, UserRole.WASTE_DRIVER})


class KycStatus(str, enum.Enum):
    """Driver identity verification status"""
    NOT_SUBMITTED = "NOT_SUBMITTED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AvailabilityStatus(str, enum.Enum):
    """Derived driver availability, recomputed by the capacity service"""
    OFFLINE = "OFFLINE"
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"


class User(Base):
    """User model for customers, drivers and admins"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(SQLEnum(UserRole), default=UserRole.CUSTOMER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Driver-specific fields
    kyc_status = Column(SQLEnum(KycStatus), default=KycStatus.NOT_SUBMITTED, nullable=False, index=True)
    kyc_rejection_reason = Column(Text, nullable=True)
    is_online = Column(Boolean, default=False, nullable=False)
    availability_status = Column(
        SQLEnum(AvailabilityStatus), default=AvailabilityStatus.OFFLINE, nullable=False
    )
    max_active_orders = Column(Integer, nullable=False, default=_default_max_active_orders)

    # Only the ledger writes this column
    wallet_balance = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_driver(self) -> bool:
        return self.role in DRIVER_ROLES

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
