"""
Scenario: several drivers go for the same order.

Exactly one claim succeeds. Every other driver gets 409, keeps zero active
orders and stays AVAILABLE.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.db.models.order import Order, OrderStatus
from app.db.models.user import User

from tests.scenarios.conftest import create_order, driver_action


@pytest.mark.scenario
async def test_exactly_one_driver_wins(test_client: AsyncClient, db_session, sample_customer, driver_factory):
    drivers = [await driver_factory(first_name=f"Rider{i}") for i in range(4)]
    order = await create_order(test_client, sample_customer)

    statuses = []
    for driver in drivers:
        response = await driver_action(test_client, driver, order["id"], "accept")
        statuses.append(response.status_code)

    assert statuses.count(200) == 1
    assert statuses.count(409) == 3

    result = await db_session.execute(
        select(Order).where(Order.id == order["id"]).execution_options(populate_existing=True)
    )
    stored = result.scalar_one()
    assert stored.status == OrderStatus.ASSIGNED
    assert stored.driver_id == drivers[statuses.index(200)].id

    for driver, code in zip(drivers, statuses):
        refreshed = await db_session.execute(
            select(User).where(User.id == driver.id).execution_options(populate_existing=True)
        )
        user = refreshed.scalar_one()
        expected = "BUSY" if code == 200 else "AVAILABLE"
        assert user.availability_status.value == expected


@pytest.mark.scenario
async def test_busy_driver_cannot_take_second_order(
    test_client: AsyncClient, sample_customer, driver_factory
):
    driver = await driver_factory()
    first = await create_order(test_client, sample_customer)
    second = await create_order(test_client, sample_customer, service_type="RIDE_BOOKING")

    assert (await driver_action(test_client, driver, first["id"], "accept")).status_code == 200
    refused = await driver_action(test_client, driver, second["id"], "accept")
    assert refused.status_code == 409
    assert refused.json()["error"]["code"] == "ERR_3006"

    await driver_action(test_client, driver, first["id"], "complete")
    accepted = await driver_action(test_client, driver, second["id"], "accept")
    assert accepted.status_code == 200
