"""
Capacity Service - Driver Availability Tracking

A driver's availability is derived, never set directly:

    OFFLINE    if the driver is not online
    BUSY       if active orders >= max_active_orders
    AVAILABLE  otherwise

where active orders are the driver's orders in ASSIGNED or IN_PROGRESS. The
stored value is recomputed after every claim, completion and online toggle,
inside the same transaction as the change that triggered it.
"""
from dataclasses import dataclass

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UserNotFoundError, AccessDeniedError, ErrorCode
from app.core.logging import get_logger
from app.db.models.order import Order, ACTIVE_ORDER_STATUSES
from app.db.models.user import User, AvailabilityStatus

logger = get_logger(__name__)


def compute_availability(is_online: bool, active_count: int, max_active_orders: int) -> AvailabilityStatus:
    """Derive availability from the online flag and the active order count"""
    if not is_online:
        return AvailabilityStatus.OFFLINE
    if active_count >= max_active_orders:
        return AvailabilityStatus.BUSY
    return AvailabilityStatus.AVAILABLE


@dataclass
class DriverStatus:
    """Result of an online toggle"""
    is_online: bool
    availability_status: AvailabilityStatus
    active_orders_count: int
    max_active_orders: int


class CapacityService:
    """Counts active orders and persists the derived availability. Never commits."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def active_count(self, driver_id: int) -> int:
        """Number of orders held by the driver in ASSIGNED or IN_PROGRESS"""
        result = await self.db.execute(
            select(func.count(Order.id)).where(
                Order.driver_id == driver_id,
                Order.status.in_(ACTIVE_ORDER_STATUSES),
            )
        )
        return int(result.scalar_one())

    async def recompute(self, driver: User) -> AvailabilityStatus:
        """Recompute and persist the driver's availability from current state"""
        count = await self.active_count(driver.id)
        status = compute_availability(bool(driver.is_online), count, driver.max_active_orders)
        if driver.availability_status != status:
            logger.debug(
                "Driver availability changed",
                extra_data={
                    "driver_id": driver.id,
                    "from": driver.availability_status.value if driver.availability_status else None,
                    "to": status.value,
                    "active_orders_count": count,
                }
            )
        driver.availability_status = status
        await self.db.flush()
        return status

    async def set_online_status(self, driver_id: int, is_online: bool) -> DriverStatus:
        """Toggle a driver online or offline and recompute availability. Caller commits."""
        result = await self.db.execute(select(User).where(User.id == driver_id))
        driver = result.scalar_one_or_none()
        if not driver:
            raise UserNotFoundError(driver_id)
        if not driver.is_driver:
            raise AccessDeniedError(
                "Only drivers can change online status",
                error_code=ErrorCode.INVALID_USER_ROLE,
            )

        driver.is_online = is_online
        count = await self.active_count(driver.id)
        status = compute_availability(is_online, count, driver.max_active_orders)
        driver.availability_status = status
        await self.db.flush()

        logger.info(
            "Driver online status updated",
            extra_data={
                "driver_id": driver_id,
                "is_online": is_online,
                "availability_status": status.value,
                "active_orders_count": count,
            }
        )
        return DriverStatus(
            is_online=is_online,
            availability_status=status,
            active_orders_count=count,
            max_active_orders=driver.max_active_orders,
        )
