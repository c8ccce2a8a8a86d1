"""
Steam Storage — Currency conversion relative to the BASE currency

Exchange rates are derived from the marketplace itself: the same reference
item is priced in BASE and in the target currency, and the ratio of the two
prices is the rate. Amounts stored in BASE are converted into a user's
currency by multiplying with the latest rate.

All money values use Decimal, never float.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

import structlog

from steam_storage.utils.price import quantize_money

logger = structlog.get_logger(__name__)

RATE_PRECISION = Decimal("0.000001")

# Rate used when a currency has no recorded history yet (fail-open)
DEFAULT_RATE = Decimal("1")


def exchange_rate(price: Decimal, base_price: Decimal) -> Decimal:
    """
    Rate of a currency against BASE from two prices of the same item.

    Examples:
        >>> exchange_rate(Decimal("9.00"), Decimal("10.00"))
        Decimal('0.900000')
    """
    if base_price <= Decimal("0"):
        raise ValueError(f"base_price must be positive, got {base_price}")
    if price < Decimal("0"):
        raise ValueError(f"price must be non-negative, got {price}")

    return (price / base_price).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)


def convert_from_base(amount: Decimal, rate: Decimal | None) -> Decimal:
    """
    Convert an amount in BASE currency into a currency with the given rate.

    A missing rate is treated as 1.0.
    """
    effective_rate = DEFAULT_RATE if rate is None else rate
    result = quantize_money(amount * effective_rate)

    logger.debug(
        "forex_convert_from_base",
        amount=str(amount),
        rate=str(effective_rate),
        result=str(result),
    )
    return result
