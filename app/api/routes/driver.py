"""
Driver API Routes - online status, order discovery and the claim/start/complete flow
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, StrictBool
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import require_driver
from app.api.dependencies.services import get_capacity_service, get_order_service
from app.api.routes.schemas import (
    DriverStateResponse,
    OrderResponse,
    PaginatedOrdersResponse,
    order_to_response,
    snapshot_to_response,
)
from app.db.database import get_db
from app.db.models.order import ServiceType
from app.db.models.user import User
from app.domain.services.capacity_service import CapacityService
from app.domain.services.order_service import OrderService
from app.domain.services.pagination import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

router = APIRouter()


# ==================== Schemas ====================


class OnlineStatusUpdate(BaseModel):
    is_online: StrictBool


class OnlineStatusResponse(BaseModel):
    is_online: bool
    availability_status: str
    active_orders_count: int
    max_active_orders: int


class EarningsPreviewResponse(BaseModel):
    """What the driver would earn by completing the order"""
    amount: float
    tip_amount: float
    fee_percent: float
    platform_fee: float
    driver_earning: float
    credit_amount: float


class AvailableOrderItem(BaseModel):
    order: OrderResponse
    earnings: EarningsPreviewResponse


class AvailableOrdersResponse(BaseModel):
    driver: DriverStateResponse
    items: List[AvailableOrderItem]
    total: int
    page: int
    limit: int
    total_pages: int


class ClaimResponse(BaseModel):
    order: OrderResponse
    availability_status: str
    active_orders_count: int
    max_active_orders: int


class CompletionResponse(BaseModel):
    order: OrderResponse
    earnings: EarningsPreviewResponse
    transaction_id: Optional[int] = None
    already_processed: bool = False
    availability_status: Optional[str] = None


# ==================== Status ====================


@router.patch(
    "/status",
    response_model=OnlineStatusResponse,
    summary="Go online or offline",
    description="Availability is recomputed from the number of active orders.",
)
async def update_online_status(
    data: OnlineStatusUpdate,
    driver: User = Depends(require_driver),
    capacity: CapacityService = Depends(get_capacity_service),
    db: AsyncSession = Depends(get_db),
):
    result = await capacity.set_online_status(driver.id, data.is_online)
    await db.commit()
    return OnlineStatusResponse(
        is_online=result.is_online,
        availability_status=result.availability_status.value,
        active_orders_count=result.active_orders_count,
        max_active_orders=result.max_active_orders,
    )


# ==================== Discovery ====================


@router.get(
    "/orders/available",
    response_model=AvailableOrdersResponse,
    summary="List claimable orders",
    description="Unassigned PENDING orders matching the driver's service types, with an earnings preview.",
)
async def list_available_orders(
    service_type: Optional[ServiceType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    driver: User = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    previews, snapshot = await service.list_available_orders(driver.id, service_type, page, limit)
    items = [
        AvailableOrderItem(
            order=order_to_response(p.order),
            earnings=EarningsPreviewResponse(
                amount=float(p.order.amount),
                tip_amount=float(p.order.tip_amount or 0),
                fee_percent=float(p.fee_percent),
                platform_fee=float(p.settlement.platform_fee),
                driver_earning=float(p.settlement.driver_earning),
                credit_amount=float(p.settlement.credit_amount),
            ),
        )
        for p in previews.items
    ]
    return AvailableOrdersResponse(
        driver=snapshot_to_response(snapshot),
        items=items,
        total=previews.total,
        page=previews.page,
        limit=previews.limit,
        total_pages=previews.total_pages,
    )


@router.get(
    "/orders/active",
    response_model=List[OrderResponse],
    summary="List my active orders",
)
async def list_active_orders(
    driver: User = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_active_orders(driver.id)
    return [order_to_response(o) for o in orders]


@router.get(
    "/orders/completed",
    response_model=PaginatedOrdersResponse,
    summary="List my completed orders",
)
async def list_completed_orders(
    service_type: Optional[ServiceType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    driver: User = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    result = await service.list_completed_orders(driver.id, service_type, page, limit)
    return PaginatedOrdersResponse(
        items=[order_to_response(o) for o in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get an order",
    description="Visible if assigned to the driver or still open for claiming.",
)
async def get_order(
    order_id: int,
    driver: User = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_driver_order(order_id, driver.id)
    return order_to_response(order)


# ==================== Lifecycle ====================


@router.post(
    "/orders/{order_id}/accept",
    response_model=ClaimResponse,
    summary="Claim an order",
    description="Exactly one driver wins a PENDING order; the others get 409.",
)
async def accept_order(
    order_id: int,
    driver: User = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    result = await service.claim(order_id, driver.id)
    return ClaimResponse(
        order=order_to_response(result.order),
        availability_status=result.availability_status.value,
        active_orders_count=result.active_orders_count,
        max_active_orders=result.max_active_orders,
    )


@router.post(
    "/orders/{order_id}/start",
    response_model=OrderResponse,
    summary="Start an order",
)
async def start_order(
    order_id: int,
    driver: User = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    order = await service.start(order_id, driver.id)
    return order_to_response(order)


@router.post(
    "/orders/{order_id}/complete",
    response_model=CompletionResponse,
    summary="Complete an order",
    description="Credits the driver's wallet exactly once. Replays return the stored result.",
)
async def complete_order(
    order_id: int,
    driver: User = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    result = await service.complete(order_id, driver.id)
    order = result.order
    return CompletionResponse(
        order=order_to_response(order),
        earnings=EarningsPreviewResponse(
            amount=float(order.amount),
            tip_amount=float(order.tip_amount or 0),
            fee_percent=float(service.settlement_config.platform_fee_percent),
            platform_fee=float(result.settlement.platform_fee),
            driver_earning=float(result.settlement.driver_earning),
            credit_amount=float(result.settlement.credit_amount),
        ),
        transaction_id=result.transaction.id if result.transaction else None,
        already_processed=result.already_processed,
        availability_status=result.availability_status.value if result.availability_status else None,
    )
