"""
Unit tests for LedgerService.

Balances move only through credit/debit, every movement leaves exactly one
WalletTransaction, and a given order or withdrawal can be booked only once.
"""
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings as h_settings
from hypothesis.strategies import decimals, lists, sampled_from, tuples
from sqlalchemy import func, select

from app.core.exceptions import (
    DuplicateLedgerEntryError,
    ErrorCode,
    InsufficientFundsError,
    UserNotFoundError,
    ValidationException,
)
from app.db.models.wallet_transaction import TransactionType, WalletTransaction
from app.domain.services.ledger_service import LedgerService


async def _transaction_count(db_session, user_id: int) -> int:
    result = await db_session.execute(
        select(func.count(WalletTransaction.id)).where(WalletTransaction.user_id == user_id)
    )
    return result.scalar_one()


@pytest.mark.unit
async def test_credit_records_balance_before_and_after(db_session, sample_driver, sample_order):
    ledger = LedgerService(db_session)

    tx = await ledger.credit(sample_driver.id, Decimal("4250"), order_id=sample_order.id, note="Earning")
    await db_session.commit()

    assert tx.type == TransactionType.CREDIT
    assert tx.amount == Decimal("4250.00")
    assert tx.balance_before == Decimal("0.00")
    assert tx.balance_after == Decimal("4250.00")
    assert tx.order_id == sample_order.id
    assert await ledger.get_balance(sample_driver.id) == Decimal("4250.00")


@pytest.mark.unit
async def test_debit_reduces_balance(db_session, driver_factory, withdrawal_factory):
    driver = await driver_factory(wallet_balance=Decimal("1000.00"))
    withdrawal = await withdrawal_factory(user_id=driver.id, amount=Decimal("400.00"))
    ledger = LedgerService(db_session)

    tx = await ledger.debit(driver.id, Decimal("400"), withdrawal_id=withdrawal.id)
    await db_session.commit()

    assert tx.type == TransactionType.DEBIT
    assert tx.balance_before == Decimal("1000.00")
    assert tx.balance_after == Decimal("600.00")
    assert tx.withdrawal_id == withdrawal.id
    assert await ledger.get_balance(driver.id) == Decimal("600.00")


@pytest.mark.unit
async def test_debit_can_empty_wallet(db_session, driver_factory):
    driver = await driver_factory(wallet_balance=Decimal("250.00"))
    ledger = LedgerService(db_session)

    tx = await ledger.debit(driver.id, Decimal("250.00"))

    assert tx.balance_after == Decimal("0.00")


@pytest.mark.unit
async def test_debit_beyond_balance_changes_nothing(db_session, driver_factory):
    driver = await driver_factory(wallet_balance=Decimal("100.00"))
    ledger = LedgerService(db_session)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await ledger.debit(driver.id, Decimal("100.01"))

    assert exc_info.value.error_code == ErrorCode.INSUFFICIENT_FUNDS_AT_PAYOUT
    assert exc_info.value.phase == InsufficientFundsError.PHASE_PAYOUT
    assert await ledger.get_balance(driver.id) == Decimal("100.00")
    assert await _transaction_count(db_session, driver.id) == 0


@pytest.mark.unit
async def test_second_credit_for_same_order_is_rejected(db_session, sample_driver, sample_order):
    ledger = LedgerService(db_session)
    await ledger.credit(sample_driver.id, Decimal("850"), order_id=sample_order.id)
    await db_session.commit()

    with pytest.raises(DuplicateLedgerEntryError) as exc_info:
        await ledger.credit(sample_driver.id, Decimal("850"), order_id=sample_order.id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.details["order_id"] == sample_order.id
    assert await ledger.get_balance(sample_driver.id) == Decimal("850.00")
    assert await _transaction_count(db_session, sample_driver.id) == 1


@pytest.mark.unit
async def test_balance_equals_sum_of_transactions(db_session, sample_driver, sample_customer, order_factory):
    ledger = LedgerService(db_session)
    credits = [Decimal("100.10"), Decimal("2500.55"), Decimal("0.35")]
    for amount in credits:
        order = await order_factory(customer_id=sample_customer.id)
        await ledger.credit(sample_driver.id, amount, order_id=order.id)
    await ledger.debit(sample_driver.id, Decimal("1000.00"))
    await db_session.commit()

    history = await ledger.get_history(sample_driver.id)
    signed = sum(
        tx.amount if tx.type == TransactionType.CREDIT else -tx.amount
        for tx in history
    )

    assert await ledger.get_balance(sample_driver.id) == signed == Decimal("1601.00")


@pytest.mark.unit
async def test_history_is_newest_first_and_limited(db_session, sample_driver):
    ledger = LedgerService(db_session)
    for i in range(1, 6):
        await ledger.credit(sample_driver.id, Decimal(i))
    await db_session.commit()

    history = await ledger.get_history(sample_driver.id, limit=3)

    assert [tx.amount for tx in history] == [Decimal("5.00"), Decimal("4.00"), Decimal("3.00")]
    assert history[0].balance_after == Decimal("15.00")


@pytest.mark.unit
async def test_negative_credit_rejected(db_session, sample_driver):
    ledger = LedgerService(db_session)

    with pytest.raises(ValidationException):
        await ledger.credit(sample_driver.id, Decimal("-1"))


@pytest.mark.unit
async def test_zero_debit_rejected(db_session, sample_driver):
    ledger = LedgerService(db_session)

    with pytest.raises(ValidationException):
        await ledger.debit(sample_driver.id, Decimal("0"))


@pytest.mark.unit
async def test_unknown_user(db_session):
    ledger = LedgerService(db_session)

    with pytest.raises(UserNotFoundError):
        await ledger.get_balance(424242)
    with pytest.raises(UserNotFoundError):
        await ledger.credit(424242, Decimal("10"))


LEDGER_MOVES = lists(
    tuples(
        sampled_from(["credit", "debit"]),
        decimals(min_value=Decimal("0.01"), max_value=Decimal("5000"), places=2),
    ),
    min_size=1,
    max_size=12,
)


async def _signed_total(db_session, user_id: int) -> Decimal:
    rows = await db_session.execute(
        select(WalletTransaction.type, WalletTransaction.amount).where(WalletTransaction.user_id == user_id)
    )
    return sum(
        (amount if tx_type == TransactionType.CREDIT else -amount for tx_type, amount in rows.all()),
        Decimal("0.00"),
    )


@pytest.mark.unit
@given(moves=LEDGER_MOVES)
@h_settings(
    max_examples=30,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    deadline=None,
)
async def test_balance_tracks_transactions_for_any_sequence(moves, db_session, driver_factory):
    driver = await driver_factory()
    ledger = LedgerService(db_session)
    expected = Decimal("0.00")

    for kind, amount in moves:
        if kind == "credit":
            await ledger.credit(driver.id, amount)
            expected += amount
        elif amount <= expected:
            await ledger.debit(driver.id, amount)
            expected -= amount
        else:
            with pytest.raises(InsufficientFundsError):
                await ledger.debit(driver.id, amount)
        await db_session.commit()

        balance = await ledger.get_balance(driver.id)
        assert balance == expected
        assert balance == await _signed_total(db_session, driver.id)
        assert balance >= 0
