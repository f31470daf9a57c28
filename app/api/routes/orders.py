"""
Customer Order API Routes
"""
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies.auth import require_customer
from app.api.dependencies.services import get_order_service
from app.api.routes.schemas import (
    OrderResponse,
    PaginatedOrdersResponse,
    order_to_response,
)
from app.core.config import settings
from app.db.models.order import OrderStatus, ServiceType
from app.db.models.user import User
from app.domain.services.order_service import OrderService
from app.domain.services.pagination import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

router = APIRouter()


class OrderCreate(BaseModel):
    """Schema for creating an order"""
    service_type: ServiceType
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    tip_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    pickup_address: str = Field(..., min_length=3, max_length=500)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    dropoff_address: Optional[str] = Field(None, min_length=3, max_length=500)
    dropoff_lat: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_lng: Optional[float] = Field(None, ge=-180, le=180)
    distance_km: Optional[float] = Field(None, ge=0)
    eta_minutes: Optional[int] = Field(None, ge=0)
    metadata: Optional[dict[str, Any]] = None


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
    description="Creates a PENDING order with a unique order code (e.g. DP-2025-4821).",
)
async def create_order(
    data: OrderCreate,
    customer: User = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    order = await service.create_order(
        customer_id=customer.id,
        service_type=data.service_type,
        amount=data.amount,
        tip_amount=data.tip_amount,
        currency=(data.currency or settings.DEFAULT_CURRENCY).upper(),
        pickup_address=data.pickup_address,
        pickup_lat=data.pickup_lat,
        pickup_lng=data.pickup_lng,
        dropoff_address=data.dropoff_address,
        dropoff_lat=data.dropoff_lat,
        dropoff_lng=data.dropoff_lng,
        distance_km=data.distance_km,
        eta_minutes=data.eta_minutes,
        details=data.metadata,
    )
    return order_to_response(order)


@router.get(
    "",
    response_model=PaginatedOrdersResponse,
    summary="List my orders",
    description="Orders created by the calling customer, newest first.",
)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    customer: User = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    result = await service.list_customer_orders(customer.id, status_filter, page, limit)
    return PaginatedOrdersResponse(
        items=[order_to_response(o) for o in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get one of my orders",
)
async def get_order(
    order_id: int,
    customer: User = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_customer_order(order_id, customer.id)
    return order_to_response(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order",
    description="Only PENDING orders without a driver can be cancelled.",
)
async def cancel_order(
    order_id: int,
    customer: User = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel(order_id, customer.id)
    return order_to_response(order)
