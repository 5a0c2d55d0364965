# tradematch/domain/pnl.py
"""
Tick-based P&L conversion.

Only the final P&L is rounded. Tick counts and raw values keep full precision
so several partial matches feeding one trade do not compound rounding error.
"""

from typing import Optional

from tradematch.domain.errors import InvalidSpec
from tradematch.domain.models import ContractSpec, Direction

PNL_DECIMALS = 2


def validate_spec(spec: ContractSpec, instrument: Optional[str] = None) -> ContractSpec:
    """Raise InvalidSpec unless tick size and tick value are both positive."""
    if not (spec.tick_size > 0 and spec.tick_value > 0):
        raise InvalidSpec(instrument, spec.tick_size, spec.tick_value)
    return spec


def ticks(entry_price: float, exit_price: float, spec: ContractSpec) -> float:
    """Signed, unrounded number of ticks between entry and exit."""
    validate_spec(spec)
    return (exit_price - entry_price) / spec.tick_size


def raw_pnl(
    side: Direction,
    quantity: float,
    entry_price: float,
    exit_price: float,
    spec: ContractSpec,
) -> float:
    """Unrounded P&L of one matched quantity."""
    raw = ticks(entry_price, exit_price, spec) * spec.tick_value * quantity
    return raw if side == Direction.LONG else -raw


def round_pnl(value: float) -> float:
    return round(value, PNL_DECIMALS)


def calculate(
    side: Direction,
    quantity: float,
    entry_price: float,
    exit_price: float,
    spec: ContractSpec,
) -> float:
    """
    Realized P&L of a position closed at exit_price.

    Args:
        side: Direction of the position being closed
        quantity: Contracts matched
        entry_price: Decimal entry price
        exit_price: Decimal exit price
        spec: Tick size and tick value of the instrument

    Returns:
        P&L rounded to 2 decimal places
    """
    return round_pnl(raw_pnl(side, quantity, entry_price, exit_price, spec))
