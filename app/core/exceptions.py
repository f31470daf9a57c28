"""
Custom Exception Hierarchy

Structured exceptions for consistent error handling. The API layer maps every
AppException to `{"error": {"code", "message", "details"}}` with its status code,
so callers can tell a lost claim race from an illegal transition from a
balance problem.
"""
from decimal import Decimal
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    FORBIDDEN = "ERR_1005"
    SERVICE_UNAVAILABLE = "ERR_1006"

    # Order errors (2xxx)
    ORDER_NOT_FOUND = "ERR_2001"
    ORDER_CONFLICT = "ERR_2002"
    ORDER_CODE_EXHAUSTED = "ERR_2003"
    WRONG_SERVICE_TYPE = "ERR_2004"

    # User / driver errors (3xxx)
    USER_NOT_FOUND = "ERR_3001"
    KYC_NOT_APPROVED = "ERR_3002"
    DRIVER_OFFLINE = "ERR_3003"
    DRIVER_INACTIVE = "ERR_3004"
    INVALID_USER_ROLE = "ERR_3005"
    CAPACITY_EXCEEDED = "ERR_3006"

    # Wallet errors (4xxx)
    INSUFFICIENT_FUNDS_AT_REQUEST = "ERR_4001"
    INSUFFICIENT_FUNDS_AT_PAYOUT = "ERR_4002"
    INVALID_AMOUNT = "ERR_4003"
    LEDGER_ENTRY_EXISTS = "ERR_4004"
    WITHDRAWAL_NOT_FOUND = "ERR_4005"
    WITHDRAWAL_CONFLICT = "ERR_4006"

    # State machine errors (6xxx)
    INVALID_STATE_TRANSITION = "ERR_6001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class AccessDeniedError(AppException):
    """Raised when the caller may not perform an action (role, account or gate)"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FORBIDDEN,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=403,
            details=details
        )


class ServiceUnavailableError(AppException):
    """Raised when the operation cannot be completed right now and may be retried"""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE):
        super().__init__(message=message, error_code=error_code, status_code=503)


# ============================================================================
# Orders
# ============================================================================

class OrderNotFoundError(NotFoundException):
    """Raised when an order does not exist or is not visible to the caller"""

    def __init__(self, order_id: int):
        super().__init__("Order", order_id, error_code=ErrorCode.ORDER_NOT_FOUND)


class OrderConflictError(AppException):
    """Raised when a concurrent request changed the order first (e.g. another driver claimed it)"""

    def __init__(self, order_id: int, message: str = "Order is no longer available"):
        super().__init__(
            message=message,
            error_code=ErrorCode.ORDER_CONFLICT,
            status_code=409,
            details={"order_id": order_id}
        )


class CapacityExceededError(AppException):
    """Raised when a driver already holds the maximum number of active orders"""

    def __init__(self, driver_id: int, active_count: int, max_active_orders: int):
        super().__init__(
            message="You have reached your active order limit",
            error_code=ErrorCode.CAPACITY_EXCEEDED,
            status_code=409,
            details={
                "driver_id": driver_id,
                "active_orders_count": active_count,
                "max_active_orders": max_active_orders,
            }
        )


# ============================================================================
# State machine
# ============================================================================

class InvalidStateTransitionError(AppException):
    """Raised when an entity's current state does not permit the requested transition"""

    def __init__(
        self,
        entity: str,
        entity_id: int | None,
        current_state: str,
        target_state: str
    ):
        super().__init__(
            message=f"{entity} cannot move from '{current_state}' to '{target_state}'",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
            status_code=409,
            details={
                "entity": entity,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
            }
        )


# ============================================================================
# Users
# ============================================================================

class UserNotFoundError(NotFoundException):
    """Raised when user is not found"""

    def __init__(self, user_id: int):
        super().__init__("User", user_id, error_code=ErrorCode.USER_NOT_FOUND)


# ============================================================================
# Wallet / withdrawals
# ============================================================================

class WalletException(AppException):
    """Base exception for wallet-related errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        user_id: int | None = None,
        status_code: int = 400,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )
        if user_id:
            self.details["user_id"] = user_id


class InsufficientFundsError(WalletException):
    """Raised when the wallet balance does not cover an amount.

    `phase` is "request" for the soft check when a withdrawal is requested and
    "payout" for the authoritative check when it is marked paid.
    """

    PHASE_REQUEST = "request"
    PHASE_PAYOUT = "payout"

    def __init__(self, user_id: int, balance: Decimal, amount: Decimal, phase: str):
        if phase == self.PHASE_PAYOUT:
            message = "User wallet balance is insufficient for payout"
            code = ErrorCode.INSUFFICIENT_FUNDS_AT_PAYOUT
        else:
            message = "Insufficient wallet balance"
            code = ErrorCode.INSUFFICIENT_FUNDS_AT_REQUEST
        super().__init__(
            message=message,
            error_code=code,
            user_id=user_id,
            details={"balance": float(balance), "amount": float(amount), "phase": phase}
        )
        self.phase = phase


class DuplicateLedgerEntryError(WalletException):
    """Raised by the ledger when a transaction for the same order or withdrawal already exists"""

    def __init__(self, user_id: int, order_id: int | None = None, withdrawal_id: int | None = None):
        super().__init__(
            message="A ledger entry for this source already exists",
            error_code=ErrorCode.LEDGER_ENTRY_EXISTS,
            user_id=user_id,
            status_code=409,
            details={"order_id": order_id, "withdrawal_id": withdrawal_id}
        )


class WithdrawalNotFoundError(NotFoundException):
    """Raised when a withdrawal does not exist"""

    def __init__(self, withdrawal_id: int):
        super().__init__("Withdrawal", withdrawal_id, error_code=ErrorCode.WITHDRAWAL_NOT_FOUND)


class WithdrawalConflictError(AppException):
    """Raised when two admin reviews collide on the same withdrawal"""

    def __init__(self, withdrawal_id: int):
        super().__init__(
            message="Withdrawal was reviewed by another request",
            error_code=ErrorCode.WITHDRAWAL_CONFLICT,
            status_code=409,
            details={"withdrawal_id": withdrawal_id}
        )
