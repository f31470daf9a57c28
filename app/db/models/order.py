"""
Order Model - Delivery, Moving, Waste Pickup and Ride Orders
"""
import enum
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Numeric, ForeignKey, Float, JSON, Index
from sqlalchemy.orm import relationship

from app.db.database import Base
from app.db.models.user import UserRole, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_ORDER_STATUSES = (OrderStatus.ASSIGNED, OrderStatus.IN_PROGRESS)


class ServiceType(str, enum.Enum):
    DISPATCH = "DISPATCH"
    PARK_N_GO = "PARK_N_GO"
    WASTE_PICKUP = "WASTE_PICKUP"
    RIDE_BOOKING = "RIDE_BOOKING"


# Which service types each driver role may claim
ROLE_SERVICE_MAP: dict[UserRole, tuple[ServiceType, ...]] = {
    UserRole.RIDER: (ServiceType.DISPATCH, ServiceType.RIDE_BOOKING),
    UserRole.TRUCK_DRIVER: (ServiceType.PARK_N_GO,),
    UserRole.WASTE_DRIVER: (ServiceType.WASTE_PICKUP,),
}

ORDER_CODE_PREFIXES: dict[ServiceType, str] = {
    ServiceType.DISPATCH: "DP",
    ServiceType.PARK_N_GO: "PNG",
    ServiceType.WASTE_PICKUP: "WP",
    ServiceType.RIDE_BOOKING: "RD",
}
DEFAULT_ORDER_CODE_PREFIX = "OD"


class Order(Base):
    """Customer order, claimed and fulfilled by one driver"""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_code = Column(String(16), unique=True, nullable=False, index=True)
    service_type = Column(SQLEnum(ServiceType), nullable=False)
    status = Column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    tip_amount = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")

    # Pickup details
    pickup_address = Column(String(500), nullable=False)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)

    # Dropoff details
    dropoff_address = Column(String(500), nullable=True)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)

    distance_km = Column(Float, nullable=True)
    eta_minutes = Column(Integer, nullable=True)
    # `metadata` is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # Settlement, written once on completion
    platform_fee = Column(Numeric(12, 2), nullable=True)
    driver_earning = Column(Numeric(12, 2), nullable=True)

    # Timestamps
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    customer = relationship("User", foreign_keys=[customer_id])
    driver = relationship("User", foreign_keys=[driver_id])

    __table_args__ = (
        Index("ix_orders_driver_status", "driver_id", "status"),
    )
