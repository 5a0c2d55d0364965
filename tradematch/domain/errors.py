# tradematch/domain/errors.py
"""Error taxonomy for fill matching."""

from typing import Optional


class TradeMatchError(Exception):
    """Base class for matching errors."""


class InvalidFill(TradeMatchError):
    """A fill that cannot be matched (bad quantity, price, timestamp or side)."""

    def __init__(self, reason: str, fill_id: Optional[str] = None):
        self.reason = reason
        self.fill_id = fill_id
        super().__init__(f"Invalid fill {fill_id}: {reason}" if fill_id else f"Invalid fill: {reason}")


class InvalidSpec(TradeMatchError):
    """Contract spec with a non-positive tick size or tick value."""

    def __init__(self, instrument: Optional[str], tick_size, tick_value):
        self.instrument = instrument
        self.tick_size = tick_size
        self.tick_value = tick_value
        super().__init__(
            f"Invalid contract spec for {instrument or '<unnamed>'}: "
            f"tick_size={tick_size}, tick_value={tick_value}"
        )


class UnknownInstrument(UserWarning):
    """Instrument matched with the default contract spec."""
