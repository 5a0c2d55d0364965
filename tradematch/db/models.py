# tradematch/db/models.py
"""
SQLModel definitions for matched trades.
Designed for SQLite locally, PostgreSQL in production.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field

from tradematch.domain.models import Trade


class TradeRecord(SQLModel, table=True):
    """Closed trade as stored; the id is the deterministic trade id from the matcher."""
    __tablename__ = "trade"

    id: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    instrument: str = Field(index=True)

    side: str = Field()  # LONG or SHORT
    quantity: float = Field()
    entry_price: float = Field()
    close_price: float = Field()

    # Lifecycle timestamps (UTC)
    entry_date: datetime = Field(index=True)
    close_date: datetime = Field(index=True)
    time_in_position: int = Field(default=0)  # seconds

    pnl: Optional[float] = Field(default=None)  # None while held on an invalid contract spec
    commission: float = Field(default=0.0)
    held: bool = Field(default=False)

    # Comma-joined fill ids (for audit)
    entry_fill_ids: str = Field(default="")
    exit_fill_ids: str = Field(default="")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_trade(cls, trade: Trade) -> "TradeRecord":
        return cls(
            id=trade.id,
            account_id=trade.account_id,
            instrument=trade.instrument,
            side=trade.side.value,
            quantity=trade.quantity,
            entry_price=trade.entry_price,
            close_price=trade.close_price,
            entry_date=trade.entry_date,
            close_date=trade.close_date,
            time_in_position=trade.time_in_position,
            pnl=trade.pnl,
            commission=trade.commission,
            held=trade.held,
            entry_fill_ids=",".join(trade.entry_fill_ids),
            exit_fill_ids=",".join(trade.exit_fill_ids),
        )
