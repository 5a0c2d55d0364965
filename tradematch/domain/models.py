# tradematch/domain/models.py
"""Domain value objects."""

from typing import Deque, List, Optional, Tuple
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Side(str, Enum):
    """Side of a fill."""
    BUY = "BUY"
    SELL = "SELL"

    @property
    def direction(self) -> "Direction":
        return Direction.LONG if self is Side.BUY else Direction.SHORT


class Direction(str, Enum):
    """Side of an open position or closed trade."""
    LONG = "LONG"
    SHORT = "SHORT"


class LotOrder(str, Enum):
    """Which open lot an opposing fill consumes first."""
    FIFO = "FIFO"
    LIFO = "LIFO"


class TradeGrouping(str, Enum):
    """When closing fills are turned into trades."""
    PER_FILL = "PER_FILL"  # One trade per opposing fill
    ROUND_TRIP = "ROUND_TRIP"  # One trade per flat-to-flat cycle


@dataclass(frozen=True)
class Fill:
    """A single normalized execution."""
    account_id: str
    instrument: str
    side: Side
    quantity: float
    price: float
    commission: float
    timestamp: datetime
    fill_id: str


@dataclass(frozen=True)
class ContractSpec:
    """Minimum price increment and its value per contract."""
    tick_size: float
    tick_value: float


@dataclass
class OpenLot:
    """Represents an open lot (for FIFO/LIFO matching)."""
    quantity: float
    price: float
    commission: float  # Remaining share of the opening commission
    fill_ids: List[str]
    opened_at: datetime


@dataclass
class OpenPosition:
    """Tracks the current position for one (account, instrument) during matching."""
    account_id: str
    instrument: str
    side: Direction
    lots: Deque[OpenLot] = field(default_factory=deque)
    peak_quantity: float = 0.0
    # Closed legs waiting for the position to go flat (round-trip grouping)
    pending_legs: List["MatchedLeg"] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return self.account_id, self.instrument

    @property
    def quantity(self) -> float:
        return sum(lot.quantity for lot in self.lots)

    @property
    def average_price(self) -> float:
        qty = self.quantity
        if qty == 0:
            return 0.0
        return sum(lot.price * lot.quantity for lot in self.lots) / qty

    @property
    def commission(self) -> float:
        return sum(lot.commission for lot in self.lots)

    @property
    def opened_at(self) -> Optional[datetime]:
        if not self.lots:
            return None
        return min(lot.opened_at for lot in self.lots)

    def add_lot(self, lot: OpenLot) -> None:
        self.lots.append(lot)
        self.peak_quantity = max(self.peak_quantity, self.quantity)


@dataclass(frozen=True)
class MatchedLeg:
    """Quantity matched between one open lot and one closing fill."""
    quantity: float
    entry_price: float
    exit_price: float
    entry_commission: float
    exit_commission: float
    entry_fill_ids: Tuple[str, ...]
    exit_fill_id: str
    opened_at: datetime
    closed_at: datetime
    raw_pnl: Optional[float]  # Unrounded; None when the contract spec is invalid


@dataclass(frozen=True)
class Trade:
    """Closed round trip with realized P&L."""
    id: str
    account_id: str
    instrument: str
    side: Direction
    quantity: float
    entry_price: float
    close_price: float
    entry_date: datetime
    close_date: datetime
    pnl: Optional[float]
    commission: float
    time_in_position: int  # seconds
    entry_fill_ids: Tuple[str, ...]
    exit_fill_ids: Tuple[str, ...]
    held: bool = False  # P&L blocked by an invalid contract spec

    @property
    def net_pnl(self) -> Optional[float]:
        if self.pnl is None:
            return None
        return round(self.pnl - self.commission, 2)


@dataclass(frozen=True)
class OpenPositionReport:
    """Residual position after the last available fill, shaped like a Trade."""
    id: str
    account_id: str
    instrument: str
    side: Direction
    quantity: float
    entry_price: float
    entry_date: datetime
    commission: float
    peak_quantity: float
    entry_fill_ids: Tuple[str, ...]
    lots: Tuple[OpenLot, ...]
    close_price: Optional[float] = None
    close_date: Optional[datetime] = None
    pnl: Optional[float] = None
    time_in_position: Optional[int] = None
    estimated: bool = False
    # Already closed part of a round trip that has not gone flat yet
    realized_quantity: float = 0
    realized_pnl: Optional[float] = None

    @property
    def still_open(self) -> bool:
        return not self.estimated


@dataclass(frozen=True)
class Problem:
    """Per-fill or per-trade issue reported alongside successful results."""
    kind: str  # invalid_fill, invalid_spec, unknown_instrument, out_of_order
    message: str
    account_id: Optional[str] = None
    instrument: Optional[str] = None
    fill_id: Optional[str] = None
    trade_id: Optional[str] = None


@dataclass
class MatchResult:
    """Output of a matching run."""
    trades: List[Trade] = field(default_factory=list)
    open_positions: List[OpenPositionReport] = field(default_factory=list)
    unknown_instruments: List[str] = field(default_factory=list)
    problems: List[Problem] = field(default_factory=list)
    complete: bool = True  # False for a snapshot taken before the stream was drained

    @property
    def skipped_fills(self) -> List[Problem]:
        return [p for p in self.problems if p.kind == "invalid_fill"]

    @property
    def held_trades(self) -> List[Trade]:
        return [t for t in self.trades if t.held]

    @classmethod
    def merge(cls, results: List["MatchResult"]) -> "MatchResult":
        """Combine per-partition results, keeping their order."""
        merged = cls()
        seen_unknown = set()
        for result in results:
            merged.trades.extend(result.trades)
            merged.open_positions.extend(result.open_positions)
            merged.problems.extend(result.problems)
            for symbol in result.unknown_instruments:
                if symbol not in seen_unknown:
                    seen_unknown.add(symbol)
                    merged.unknown_instruments.append(symbol)
            merged.complete = merged.complete and result.complete
        return merged
