"""
Cancellation refund calculator.

Pure functions over Decimal. Amounts keep full precision internally and
are rounded to two places only when presented.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

LATE_CANCELLATION_WINDOW = timedelta(hours=24)
LATE_DEDUCTION_PERCENT = Decimal("25")
EARLY_DEDUCTION_PERCENT = Decimal("10")

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class RefundQuote:
    price: Decimal
    deduction_percent: Decimal
    refund_amount: Decimal
    time_to_departure: timedelta


def deduction_percent(now: datetime, departure_time: datetime) -> Decimal:
    if departure_time - now <= LATE_CANCELLATION_WINDOW:
        return LATE_DEDUCTION_PERCENT
    return EARLY_DEDUCTION_PERCENT


def quote_refund(price: Decimal, departure_time: datetime, now: datetime) -> RefundQuote:
    time_to_departure = departure_time - now
    if time_to_departure <= timedelta(0):
        raise ValueError("refund requested for a trip that has already departed")

    percent = deduction_percent(now, departure_time)
    refund = Decimal(price) * (1 - percent / 100)
    return RefundQuote(
        price=Decimal(price),
        deduction_percent=percent,
        refund_amount=refund,
        time_to_departure=time_to_departure,
    )


def present_amount(value: Decimal) -> Decimal:
    return Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)
