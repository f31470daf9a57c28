"""
Order Service - Order Creation, Claim, Start, Complete and Cancel

Every status change is a single conditional UPDATE keyed on the status the
caller expects (compare-and-swap). A zero rowcount means a concurrent request
won, and is reported as a conflict rather than retried:

    UPDATE orders SET status='ASSIGNED', driver_id=:driver
    WHERE id=:id AND status='PENDING' AND driver_id IS NULL

Completion credits the driver through the ledger inside the same transaction.
A WalletTransaction already linked to the order means the completion already
happened, and the call returns the current order flagged `already_processed`.
"""
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AccessDeniedError,
    CapacityExceededError,
    DuplicateLedgerEntryError,
    ErrorCode,
    OrderConflictError,
    OrderNotFoundError,
    ServiceUnavailableError,
    UserNotFoundError,
    ValidationException,
)
from app.core.logging import get_logger, log_async_operation
from app.db.models.order import (
    ACTIVE_ORDER_STATUSES,
    DEFAULT_ORDER_CODE_PREFIX,
    ORDER_CODE_PREFIXES,
    ROLE_SERVICE_MAP,
    Order,
    OrderStatus,
    ServiceType,
)
from app.db.models.user import AvailabilityStatus, KycStatus, User, UserRole
from app.db.models.wallet_transaction import WalletTransaction
from app.domain.services.capacity_service import CapacityService, compute_availability
from app.domain.services.ledger_service import LedgerService
from app.domain.services.pagination import DEFAULT_PAGE_LIMIT, Page, fetch_page, validate_page_params
from app.domain.services.settlement import Settlement, SettlementConfig, calculate_settlement, round_money
from app.state_machine.states import ensure_transition

logger = get_logger(__name__)

DEFAULT_ORDER_CODE_ATTEMPTS = 5


def generate_order_code(service_type: ServiceType, year: int | None = None) -> str:
    """`<PREFIX>-<YEAR>-<4 digits>`, e.g. DP-2025-4821"""
    prefix = ORDER_CODE_PREFIXES.get(service_type, DEFAULT_ORDER_CODE_PREFIX)
    year = year or datetime.now(timezone.utc).year
    return f"{prefix}-{year}-{1000 + secrets.randbelow(9000)}"


def allowed_service_types(role: UserRole) -> tuple[ServiceType, ...]:
    return ROLE_SERVICE_MAP.get(role, ())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ClaimResult:
    order: Order
    availability_status: AvailabilityStatus
    active_orders_count: int
    max_active_orders: int


@dataclass
class CompletionResult:
    order: Order
    settlement: Settlement
    transaction: Optional[WalletTransaction] = None
    already_processed: bool = False
    availability_status: Optional[AvailabilityStatus] = None


@dataclass
class EarningsPreview:
    """An available order with what the driver would earn by completing it"""
    order: Order
    fee_percent: Decimal
    settlement: Settlement


@dataclass
class DriverSnapshot:
    is_online: bool
    availability_status: AvailabilityStatus
    active_orders_count: int
    max_active_orders: int
    allowed_service_types: list[ServiceType] = field(default_factory=list)

    @property
    def can_accept_more(self) -> bool:
        return self.is_online and self.active_orders_count < self.max_active_orders


class OrderService:
    """Service for the order lifecycle"""

    def __init__(
        self,
        db: AsyncSession,
        settlement_config: SettlementConfig,
        max_code_attempts: int = DEFAULT_ORDER_CODE_ATTEMPTS,
    ):
        self.db = db
        self.settlement_config = settlement_config
        self.max_code_attempts = max_code_attempts
        self.capacity = CapacityService(db)
        self.ledger = LedgerService(db)

    # ==================== Lookups ====================

    async def _get_order(self, order_id: int) -> Order | None:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_user(self, user_id: int) -> User:
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def _require_order(self, order_id: int) -> Order:
        order = await self._get_order(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    # ==================== Creation ====================

    @log_async_operation("create_order")
    async def create_order(
        self,
        customer_id: int,
        service_type: ServiceType,
        amount: Decimal,
        pickup_address: str,
        dropoff_address: str | None = None,
        tip_amount: Decimal | None = None,
        currency: str = "NGN",
        pickup_lat: float | None = None,
        pickup_lng: float | None = None,
        dropoff_lat: float | None = None,
        dropoff_lng: float | None = None,
        distance_km: float | None = None,
        eta_minutes: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> Order:
        """Create a PENDING order with a unique order code.

        Code collisions are detected by the unique constraint and retried with
        a fresh code, up to `max_code_attempts` times.
        """
        amount = round_money(amount)
        tip = round_money(tip_amount or 0)
        if amount <= 0:
            raise ValidationException(
                "Order amount must be positive", field="amount", error_code=ErrorCode.INVALID_AMOUNT
            )
        if tip < 0:
            raise ValidationException(
                "Tip amount cannot be negative", field="tip_amount", error_code=ErrorCode.INVALID_AMOUNT
            )

        customer = await self._get_user(customer_id)
        if not customer.is_active:
            raise AccessDeniedError("Account is inactive")

        for attempt in range(1, self.max_code_attempts + 1):
            order_code = generate_order_code(service_type)
            order = Order(
                order_code=order_code,
                service_type=service_type,
                status=OrderStatus.PENDING,
                amount=amount,
                tip_amount=tip,
                currency=currency,
                pickup_address=pickup_address,
                pickup_lat=pickup_lat,
                pickup_lng=pickup_lng,
                dropoff_address=dropoff_address,
                dropoff_lat=dropoff_lat,
                dropoff_lng=dropoff_lng,
                distance_km=distance_km,
                eta_minutes=eta_minutes,
                details=details or {},
                customer_id=customer_id,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(order)
            except IntegrityError:
                logger.warning(
                    "Order code collision, retrying",
                    extra_data={"order_code": order_code, "attempt": attempt},
                )
                continue

            await self.db.commit()
            logger.info(
                "Order created",
                extra_data={
                    "order_id": order.id,
                    "order_code": order.order_code,
                    "service_type": service_type.value,
                    "customer_id": customer_id,
                    "amount": str(amount),
                },
            )
            return order

        raise ServiceUnavailableError(
            "Could not generate a unique order code, please retry",
            error_code=ErrorCode.ORDER_CODE_EXHAUSTED,
        )

    # ==================== Claim ====================

    @log_async_operation("claim_order")
    async def claim(self, order_id: int, driver_id: int) -> ClaimResult:
        """Assign a PENDING order to a driver.

        Gates, in order: driver role, active account, KYC approved, online,
        spare capacity, order exists, service type allowed for the role.
        When refused for capacity the driver is persisted as BUSY.
        """
        driver = await self._get_user(driver_id)

        if not driver.is_driver:
            raise AccessDeniedError("Only drivers can accept orders", error_code=ErrorCode.INVALID_USER_ROLE)
        if not driver.is_active:
            raise AccessDeniedError("Driver account is inactive", error_code=ErrorCode.DRIVER_INACTIVE)
        if driver.kyc_status != KycStatus.APPROVED:
            raise AccessDeniedError(
                "KYC verification is required before accepting orders",
                error_code=ErrorCode.KYC_NOT_APPROVED,
                details={"kyc_status": driver.kyc_status.value},
            )
        if not driver.is_online:
            raise AccessDeniedError("You must be online to accept orders", error_code=ErrorCode.DRIVER_OFFLINE)

        active_count = await self.capacity.active_count(driver_id)
        if active_count >= driver.max_active_orders:
            if driver.availability_status != AvailabilityStatus.BUSY:
                driver.availability_status = AvailabilityStatus.BUSY
                await self.db.commit()
            logger.warning(
                "Claim refused, driver at capacity",
                extra_data={
                    "order_id": order_id,
                    "driver_id": driver_id,
                    "active_orders_count": active_count,
                    "max_active_orders": driver.max_active_orders,
                },
            )
            raise CapacityExceededError(driver_id, active_count, driver.max_active_orders)

        order = await self._require_order(order_id)

        if order.service_type not in allowed_service_types(driver.role):
            raise AccessDeniedError(
                "This order's service type is not available for your role",
                error_code=ErrorCode.WRONG_SERVICE_TYPE,
                details={"service_type": order.service_type.value, "role": driver.role.value},
            )

        if order.status != OrderStatus.PENDING or order.driver_id is not None:
            logger.warning(
                "Claim conflict, order no longer available",
                extra_data={"order_id": order_id, "driver_id": driver_id, "status": order.status.value},
            )
            raise OrderConflictError(order_id)

        now = _utcnow()
        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING,
                Order.driver_id.is_(None),
            )
            .values(status=OrderStatus.ASSIGNED, driver_id=driver_id, accepted_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Claim conflict, lost race for order",
                extra_data={"order_id": order_id, "driver_id": driver_id},
            )
            raise OrderConflictError(order_id)

        availability = await self.capacity.recompute(driver)
        await self.db.commit()

        order = await self._require_order(order_id)
        logger.info(
            "Order claimed",
            extra_data={
                "order_id": order_id,
                "order_code": order.order_code,
                "driver_id": driver_id,
                "availability_status": availability.value,
            },
        )
        return ClaimResult(
            order=order,
            availability_status=availability,
            active_orders_count=active_count + 1,
            max_active_orders=driver.max_active_orders,
        )

    # ==================== Start ====================

    @log_async_operation("start_order")
    async def start(self, order_id: int, driver_id: int) -> Order:
        """ASSIGNED -> IN_PROGRESS. Already IN_PROGRESS returns the order unchanged.

        An order nobody holds fails the transition check before ownership.
        """
        order = await self._require_order(order_id)
        if order.driver_id is None:
            ensure_transition(order.status, OrderStatus.IN_PROGRESS, order_id)
        if order.driver_id != driver_id:
            raise AccessDeniedError("This order is not assigned to you")

        if order.status == OrderStatus.IN_PROGRESS:
            logger.info(
                "Order already in progress",
                extra_data={"order_id": order_id, "driver_id": driver_id},
            )
            return order

        ensure_transition(order.status, OrderStatus.IN_PROGRESS, order_id)

        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.driver_id == driver_id,
                Order.status == OrderStatus.ASSIGNED,
            )
            .values(status=OrderStatus.IN_PROGRESS, started_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self._require_order(order_id)
            if current.status == OrderStatus.IN_PROGRESS and current.driver_id == driver_id:
                return current
            raise OrderConflictError(order_id, message="Order changed while starting")

        await self.db.commit()
        order = await self._require_order(order_id)
        logger.info("Order started", extra_data={"order_id": order_id, "driver_id": driver_id})
        return order

    # ==================== Complete ====================

    async def _already_completed(self, order_id: int, existing: WalletTransaction) -> CompletionResult:
        order = await self._require_order(order_id)
        logger.warning(
            "Completion replay, order already credited",
            extra_data={"order_id": order_id, "transaction_id": existing.id},
        )
        return CompletionResult(
            order=order,
            settlement=Settlement(
                platform_fee=order.platform_fee,
                driver_earning=order.driver_earning,
                credit_amount=existing.amount,
            ),
            transaction=existing,
            already_processed=True,
        )

    @log_async_operation("complete_order")
    async def complete(self, order_id: int, driver_id: int) -> CompletionResult:
        """Complete an ASSIGNED or IN_PROGRESS order and credit the driver.

        Status change, settlement figures, ledger credit and availability
        recompute commit together or not at all.
        """
        order = await self._require_order(order_id)
        if order.driver_id is None:
            ensure_transition(order.status, OrderStatus.COMPLETED, order_id)
        if order.driver_id != driver_id:
            raise AccessDeniedError("This order is not assigned to you")

        existing = await self.ledger.find_for_order(order_id)
        if existing:
            return await self._already_completed(order_id, existing)

        ensure_transition(order.status, OrderStatus.COMPLETED, order_id)

        settlement = calculate_settlement(order.amount, order.tip_amount, self.settlement_config)

        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.driver_id == driver_id,
                Order.status.in_(ACTIVE_ORDER_STATUSES),
            )
            .values(
                status=OrderStatus.COMPLETED,
                completed_at=_utcnow(),
                platform_fee=settlement.platform_fee,
                driver_earning=settlement.driver_earning,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            existing = await self.ledger.find_for_order(order_id)
            if existing:
                return await self._already_completed(order_id, existing)
            raise OrderConflictError(order_id, message="Order changed while completing")

        try:
            transaction = await self.ledger.credit(
                driver_id,
                settlement.credit_amount,
                order_id=order_id,
                note=f"Earning for order {order.order_code}",
            )
            driver = await self._get_user(driver_id)
            availability = await self.capacity.recompute(driver)
            await self.db.commit()
        except DuplicateLedgerEntryError:
            await self.db.rollback()
            existing = await self.ledger.find_for_order(order_id)
            return await self._already_completed(order_id, existing)
        except Exception:
            await self.db.rollback()
            raise

        order = await self._require_order(order_id)
        logger.info(
            "Order completed",
            extra_data={
                "order_id": order_id,
                "driver_id": driver_id,
                "platform_fee": str(settlement.platform_fee),
                "driver_earning": str(settlement.driver_earning),
                "credit_amount": str(settlement.credit_amount),
                "transaction_id": transaction.id,
            },
        )
        return CompletionResult(
            order=order,
            settlement=settlement,
            transaction=transaction,
            already_processed=False,
            availability_status=availability,
        )

    # ==================== Cancel ====================

    @log_async_operation("cancel_order")
    async def cancel(self, order_id: int, customer_id: int) -> Order:
        """PENDING -> CANCELLED, only by the customer who placed the order"""
        order = await self._get_order(order_id)
        if not order or order.customer_id != customer_id:
            raise OrderNotFoundError(order_id)

        ensure_transition(order.status, OrderStatus.CANCELLED, order_id)

        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.customer_id == customer_id,
                Order.status == OrderStatus.PENDING,
                Order.driver_id.is_(None),
            )
            .values(status=OrderStatus.CANCELLED, cancelled_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise OrderConflictError(order_id, message="Order was claimed before it could be cancelled")

        await self.db.commit()
        order = await self._require_order(order_id)
        logger.info("Order cancelled", extra_data={"order_id": order_id, "customer_id": customer_id})
        return order

    # ==================== Customer views ====================

    async def list_customer_orders(
        self,
        customer_id: int,
        status: OrderStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> Page[Order]:
        where = [Order.customer_id == customer_id]
        if status:
            where.append(Order.status == status)
        return await fetch_page(
            self.db, Order, where, [Order.created_at.desc(), Order.id.desc()], page, limit
        )

    async def get_customer_order(self, order_id: int, customer_id: int) -> Order:
        order = await self._get_order(order_id)
        if not order or order.customer_id != customer_id:
            raise OrderNotFoundError(order_id)
        return order

    # ==================== Driver views ====================

    async def driver_snapshot(self, driver: User) -> DriverSnapshot:
        count = await self.capacity.active_count(driver.id)
        return DriverSnapshot(
            is_online=bool(driver.is_online),
            availability_status=compute_availability(bool(driver.is_online), count, driver.max_active_orders),
            active_orders_count=count,
            max_active_orders=driver.max_active_orders,
            allowed_service_types=list(allowed_service_types(driver.role)),
        )

    async def list_available_orders(
        self,
        driver_id: int,
        service_type: ServiceType | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> tuple[Page[EarningsPreview], DriverSnapshot]:
        """Unassigned PENDING orders the driver's role can take, with an earnings preview"""
        validate_page_params(page, limit)
        driver = await self._get_user(driver_id)
        allowed = allowed_service_types(driver.role)

        if service_type is not None:
            if service_type not in allowed:
                raise ValidationException(
                    f"Invalid service type for role {driver.role.value}",
                    field="service_type",
                    details={"allowed": [s.value for s in allowed]},
                )
            types = (service_type,)
        else:
            types = allowed

        if not types:
            orders_page: Page[Order] = Page(page=page, limit=limit)
        else:
            orders_page = await fetch_page(
                self.db,
                Order,
                [
                    Order.status == OrderStatus.PENDING,
                    Order.driver_id.is_(None),
                    Order.service_type.in_(types),
                ],
                [Order.created_at.desc(), Order.id.desc()],
                page,
                limit,
            )

        fee_percent = self.settlement_config.platform_fee_percent
        previews = [
            EarningsPreview(
                order=o,
                fee_percent=fee_percent,
                settlement=calculate_settlement(o.amount, o.tip_amount, self.settlement_config),
            )
            for o in orders_page.items
        ]
        snapshot = await self.driver_snapshot(driver)
        return (
            Page(items=previews, total=orders_page.total, page=orders_page.page, limit=orders_page.limit),
            snapshot,
        )

    async def list_active_orders(self, driver_id: int) -> list[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.driver_id == driver_id, Order.status.in_(ACTIVE_ORDER_STATUSES))
            .order_by(Order.accepted_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def list_completed_orders(
        self,
        driver_id: int,
        service_type: ServiceType | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> Page[Order]:
        where = [Order.driver_id == driver_id, Order.status == OrderStatus.COMPLETED]
        if service_type:
            where.append(Order.service_type == service_type)
        return await fetch_page(
            self.db, Order, where, [Order.completed_at.desc(), Order.id.desc()], page, limit
        )

    async def get_driver_order(self, order_id: int, driver_id: int) -> Order:
        """Orders assigned to the driver, or still open for claiming"""
        order = await self._require_order(order_id)
        is_mine = order.driver_id == driver_id
        is_available = order.driver_id is None and order.status == OrderStatus.PENDING
        if not is_mine and not is_available:
            raise AccessDeniedError("You do not have access to this order")
        return order
