"""Helpers for point and bucks amounts.

Ledger amounts are fixed-precision decimals with two places. Anything that
crosses the API boundary goes through ``to_amount`` before it touches the
database.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

CENT = Decimal('0.01')

# Largest value a Numeric(10, 2) column can hold
MAX_AMOUNT = Decimal('99999999.99')

AmountLike = Union[Decimal, int, float, str]


def to_amount(value: AmountLike) -> Decimal:
    """Convert ``value`` to a Decimal quantized to two places.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError('Amount must be a number')
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f'Invalid amount: {value!r}')
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f'Invalid amount: {value!r}')
    else:
        raise ValueError(f'Unsupported amount type: {type(value).__name__}')

    if not result.is_finite():
        raise ValueError('Amount must be a finite number')

    try:
        return result.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f'Amount out of range: {value!r}')


def format_amount(value: Optional[Decimal]) -> Optional[str]:
    """Serialize an amount for JSON responses ("25.00")."""
    if value is None:
        return None
    return str(to_amount(value))
