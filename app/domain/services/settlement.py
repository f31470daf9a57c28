"""
Settlement Calculator - Platform Fee and Driver Earning for an Order

Pure arithmetic, no I/O. Every intermediate figure is rounded to 2 decimal
places, half-up, before it feeds the next step.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from app.core.exceptions import ErrorCode, ValidationException

Number = Union[Decimal, int, str]

_CENT = Decimal("0.01")


def round_money(value: Number) -> Decimal:
    """Round to 2 decimal places, half-up"""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class SettlementConfig:
    """Inputs the calculator needs from configuration, passed in explicitly"""
    platform_fee_percent: Decimal

    def __post_init__(self):
        if not Decimal("0") <= Decimal(self.platform_fee_percent) <= Decimal("100"):
            raise ValidationException(
                "platform_fee_percent must be between 0 and 100",
                field="platform_fee_percent",
            )

    @classmethod
    def from_settings(cls) -> "SettlementConfig":
        from app.core.config import settings
        return cls(platform_fee_percent=Decimal(str(settings.PLATFORM_FEE_PERCENT)))


@dataclass(frozen=True)
class Settlement:
    platform_fee: Decimal
    driver_earning: Decimal
    credit_amount: Decimal


def calculate_settlement(
    amount: Number,
    tip_amount: Number | None,
    config: SettlementConfig,
) -> Settlement:
    """Split an order amount into platform fee and driver earning.

    platform_fee   = round2(amount * pct / 100)
    driver_earning = round2(amount - platform_fee)
    credit_amount  = round2(driver_earning + tip)

    The tip goes to the driver in full and is never subject to the fee.
    """
    amount_dec = Decimal(str(amount))
    tip_dec = Decimal(str(tip_amount)) if tip_amount is not None else Decimal("0")

    if amount_dec < 0:
        raise ValidationException(
            "Order amount cannot be negative", field="amount", error_code=ErrorCode.INVALID_AMOUNT
        )
    if tip_dec < 0:
        raise ValidationException(
            "Tip amount cannot be negative", field="tip_amount", error_code=ErrorCode.INVALID_AMOUNT
        )

    platform_fee = round_money(amount_dec * Decimal(config.platform_fee_percent) / Decimal("100"))
    driver_earning = round_money(amount_dec - platform_fee)
    credit_amount = round_money(driver_earning + tip_dec)

    return Settlement(
        platform_fee=platform_fee,
        driver_earning=driver_earning,
        credit_amount=credit_amount,
    )
