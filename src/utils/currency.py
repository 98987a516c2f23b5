from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[Decimal, int, float]


def to_vnd(amount: Optional[Number]) -> Decimal:
    """Làm tròn về số nguyên VND"""
    if amount is None:
        return Decimal(0)
    return Decimal(str(amount)).quantize(Decimal(1), rounding=ROUND_HALF_UP)


def format_vnd_amount(amount: Optional[Number]) -> str:
    """1000000 -> '1,000,000'"""
    return f"{to_vnd(amount):,.0f}"


def format_vnd(amount: Optional[Number]) -> str:
    """1000000 -> '1,000,000 VND'"""
    return f"{format_vnd_amount(amount)} VND"
