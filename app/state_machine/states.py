"""
State Transition Tables for Orders and Withdrawals

Each entity has exactly one table. Services consult it through
`ensure_transition` before issuing the conditional UPDATE that performs the
move, so an illegal move is rejected before it reaches the database.
"""
from enum import Enum

from app.core.exceptions import InvalidStateTransitionError
from app.core.logging import get_logger
from app.db.models.order import OrderStatus
from app.db.models.withdrawal import WithdrawalStatus

logger = get_logger(__name__)


ORDER_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.ASSIGNED, OrderStatus.CANCELLED],
    # Completing straight from ASSIGNED is allowed (driver never pressed "start")
    OrderStatus.ASSIGNED: [OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED],
    OrderStatus.IN_PROGRESS: [OrderStatus.COMPLETED],
    OrderStatus.COMPLETED: [],
    OrderStatus.CANCELLED: [],
}

WITHDRAWAL_TRANSITIONS: dict[WithdrawalStatus, list[WithdrawalStatus]] = {
    WithdrawalStatus.PENDING: [
        WithdrawalStatus.APPROVED,
        WithdrawalStatus.REJECTED,
        WithdrawalStatus.PAID,
    ],
    WithdrawalStatus.APPROVED: [WithdrawalStatus.PAID],
    WithdrawalStatus.REJECTED: [],
    WithdrawalStatus.PAID: [],
}

_TABLES: dict[type, dict] = {
    OrderStatus: ORDER_TRANSITIONS,
    WithdrawalStatus: WITHDRAWAL_TRANSITIONS,
}

_ENTITY_NAMES: dict[type, str] = {
    OrderStatus: "Order",
    WithdrawalStatus: "Withdrawal",
}


def is_valid_transition(current: Enum, target: Enum) -> bool:
    """Check if transition from current to target state is valid"""
    transitions = _TABLES.get(type(current))
    if transitions is None or type(target) is not type(current):
        return False
    return target in transitions.get(current, [])


def ensure_transition(current: Enum, target: Enum, entity_id: int | None = None) -> None:
    """Raise InvalidStateTransitionError unless `current -> target` is in the entity's table"""
    if is_valid_transition(current, target):
        return

    entity = _ENTITY_NAMES.get(type(current), type(current).__name__)
    logger.warning(
        "Invalid state transition attempted",
        extra_data={
            "entity": entity,
            "entity_id": entity_id,
            "current_state": current.value,
            "target_state": target.value,
        }
    )
    raise InvalidStateTransitionError(entity, entity_id, current.value, target.value)
