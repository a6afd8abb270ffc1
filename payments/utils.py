from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal, InvalidOperation
from typing import NamedTuple

DEFAULT_PLATFORM_FEE_PERCENT = Decimal("0.15")


class FeeSplit(NamedTuple):
    lawyer_amount: int
    platform_fee: int


def split_amount(total: int, fee_percent=DEFAULT_PLATFORM_FEE_PERCENT) -> FeeSplit:
    """Split ``total`` into the lawyer share (floored) and the platform fee (ceiled).

    The two parts never add up to less than ``total``; with exact decimal
    arithmetic they add up to exactly ``total``.
    """
    fee_percent = Decimal(str(fee_percent))
    gross = Decimal(int(total))
    lawyer = (gross * (Decimal(1) - fee_percent)).to_integral_value(rounding=ROUND_FLOOR)
    fee = (gross * fee_percent).to_integral_value(rounding=ROUND_CEILING)
    return FeeSplit(int(lawyer), int(fee))


def parse_amount(value) -> int:
    """Parse a request amount into a positive integer of the smallest currency unit.

    Accepts ints, integral floats and numeric strings; raises ``ValueError``
    for anything else.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError("amount must be a number")
    if not amount.is_finite():
        raise ValueError("amount must be a finite number")
    if amount != amount.to_integral_value():
        raise ValueError("amount must be a whole number of the currency unit")
    if amount <= 0:
        raise ValueError("amount must be positive")
    return int(amount)
