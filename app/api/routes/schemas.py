"""
Shared response schemas and serializers used by more than one router
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel

from app.db.models.order import Order
from app.db.models.wallet_transaction import WalletTransaction
from app.db.models.withdrawal import Withdrawal
from app.domain.services.order_service import DriverSnapshot


def _money(value: Decimal | None) -> Optional[float]:
    return float(value) if value is not None else None


def _iso(value: datetime | None) -> Optional[str]:
    return value.isoformat() if value else None


# ==================== Orders ====================


class OrderResponse(BaseModel):
    """Order as seen by its customer or driver"""
    id: int
    order_code: str
    service_type: str
    status: str
    amount: float
    tip_amount: float
    currency: str
    pickup_address: str
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    dropoff_address: Optional[str] = None
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    distance_km: Optional[float] = None
    eta_minutes: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None
    customer_id: int
    driver_id: Optional[int] = None
    platform_fee: Optional[float] = None
    driver_earning: Optional[float] = None
    accepted_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    created_at: Optional[str] = None


class PaginatedOrdersResponse(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    limit: int
    total_pages: int


def order_to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_code=order.order_code,
        service_type=order.service_type.value,
        status=order.status.value,
        amount=float(order.amount),
        tip_amount=float(order.tip_amount or 0),
        currency=order.currency,
        pickup_address=order.pickup_address,
        pickup_lat=order.pickup_lat,
        pickup_lng=order.pickup_lng,
        dropoff_address=order.dropoff_address,
        dropoff_lat=order.dropoff_lat,
        dropoff_lng=order.dropoff_lng,
        distance_km=order.distance_km,
        eta_minutes=order.eta_minutes,
        metadata=order.details,
        customer_id=order.customer_id,
        driver_id=order.driver_id,
        platform_fee=_money(order.platform_fee),
        driver_earning=_money(order.driver_earning),
        accepted_at=_iso(order.accepted_at),
        started_at=_iso(order.started_at),
        completed_at=_iso(order.completed_at),
        cancelled_at=_iso(order.cancelled_at),
        created_at=_iso(order.created_at),
    )


# ==================== Driver ====================


class DriverStateResponse(BaseModel):
    """Driver availability after the last change"""
    is_online: bool
    availability_status: str
    active_orders_count: int
    max_active_orders: int
    can_accept_more: bool
    allowed_service_types: List[str] = []


def snapshot_to_response(snapshot: DriverSnapshot) -> DriverStateResponse:
    return DriverStateResponse(
        is_online=snapshot.is_online,
        availability_status=snapshot.availability_status.value,
        active_orders_count=snapshot.active_orders_count,
        max_active_orders=snapshot.max_active_orders,
        can_accept_more=snapshot.can_accept_more,
        allowed_service_types=[s.value for s in snapshot.allowed_service_types],
    )


# ==================== Wallet ====================


class TransactionResponse(BaseModel):
    """One ledger entry"""
    id: int
    type: str
    amount: float
    balance_before: float
    balance_after: float
    order_id: Optional[int] = None
    withdrawal_id: Optional[int] = None
    note: Optional[str] = None
    created_at: Optional[str] = None


def transaction_to_response(tx: WalletTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        type=tx.type.value,
        amount=float(tx.amount),
        balance_before=float(tx.balance_before),
        balance_after=float(tx.balance_after),
        order_id=tx.order_id,
        withdrawal_id=tx.withdrawal_id,
        note=tx.note,
        created_at=_iso(tx.created_at),
    )


class WithdrawalResponse(BaseModel):
    id: int
    user_id: int
    amount: float
    bank_name: str
    account_name: str
    account_number: str
    status: str
    rejection_reason: Optional[str] = None
    payment_ref: Optional[str] = None
    reviewed_by_id: Optional[int] = None
    reviewed_at: Optional[str] = None
    paid_at: Optional[str] = None
    created_at: Optional[str] = None


class PaginatedWithdrawalsResponse(BaseModel):
    items: List[WithdrawalResponse]
    total: int
    page: int
    limit: int
    total_pages: int


def withdrawal_to_response(withdrawal: Withdrawal) -> WithdrawalResponse:
    return WithdrawalResponse(
        id=withdrawal.id,
        user_id=withdrawal.user_id,
        amount=float(withdrawal.amount),
        bank_name=withdrawal.bank_name,
        account_name=withdrawal.account_name,
        account_number=withdrawal.account_number,
        status=withdrawal.status.value,
        rejection_reason=withdrawal.rejection_reason,
        payment_ref=withdrawal.payment_ref,
        reviewed_by_id=withdrawal.reviewed_by_id,
        reviewed_at=_iso(withdrawal.reviewed_at),
        paid_at=_iso(withdrawal.paid_at),
        created_at=_iso(withdrawal.created_at),
    )
