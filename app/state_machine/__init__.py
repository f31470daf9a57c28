"""
State Machine Module for Order and Withdrawal Lifecycles
"""
from app.state_machine.states import (
    ORDER_TRANSITIONS,
    WITHDRAWAL_TRANSITIONS,
    ensure_transition,
    is_valid_transition,
)

__all__ = ["ORDER_TRANSITIONS", "WITHDRAWAL_TRANSITIONS", "ensure_transition", "is_valid_transition"]
