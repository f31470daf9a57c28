"""
Fixtures and helpers for end-to-end scenario tests.

Provides:
- Terse API callers for the customer, driver and admin flows
- DB assertions for wallet balance and ledger entries
"""
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.user import User
from app.db.models.wallet_transaction import TransactionType, WalletTransaction

from tests.conftest import auth_headers


# ============================================================================
# API callers
# ============================================================================

async def create_order(client: AsyncClient, customer: User, **overrides) -> dict:
    payload = {
        "service_type": "DISPATCH",
        "amount": 5000,
        "pickup_address": "12 Admiralty Way, Lekki",
        "dropoff_address": "5 Broad Street, Lagos Island",
    }
    payload.update(overrides)
    response = await client.post("/api/orders", json=payload, headers=auth_headers(customer))
    assert response.status_code == 201, response.text
    return response.json()


async def driver_action(client: AsyncClient, driver: User, order_id: int, action: str):
    """POST /api/driver/orders/{id}/{accept|start|complete}"""
    return await client.post(
        f"/api/driver/orders/{order_id}/{action}", headers=auth_headers(driver)
    )


async def review_withdrawal(client: AsyncClient, admin: User, withdrawal_id: int, **body):
    return await client.patch(
        f"/api/admin/withdrawals/{withdrawal_id}", json=body, headers=auth_headers(admin)
    )


# ============================================================================
# DB assertions
# ============================================================================

async def assert_balance(db: AsyncSession, user_id: int, expected: str) -> None:
    result = await db.execute(
        select(User.wallet_balance)
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    assert result.scalar_one() == Decimal(expected)


async def count_transactions(
    db: AsyncSession,
    user_id: int,
    tx_type: TransactionType | None = None,
) -> int:
    query = select(func.count(WalletTransaction.id)).where(WalletTransaction.user_id == user_id)
    if tx_type is not None:
        query = query.where(WalletTransaction.type == tx_type)
    result = await db.execute(query)
    return result.scalar_one()


@pytest.fixture
async def two_riders(driver_factory) -> tuple[User, User]:
    """Two KYC-approved, online riders with the default capacity of 1"""
    rider_a = await driver_factory(first_name="Rider", last_name="A")
    rider_b = await driver_factory(first_name="Rider", last_name="B")
    return rider_a, rider_b
