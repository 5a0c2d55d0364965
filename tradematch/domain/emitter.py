# tradematch/domain/emitter.py
"""Builds closed trade and open position records from matched lots."""

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from tradematch.domain.models import (
    ContractSpec,
    Direction,
    MatchedLeg,
    OpenPosition,
    OpenPositionReport,
    Trade,
)
from tradematch.domain import pnl as pnl_calc

TRADE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "tradematch/trade")


def _unique(ids: Iterable[str]) -> Tuple[str, ...]:
    seen = {}
    for fill_id in ids:
        seen.setdefault(fill_id, None)
    return tuple(seen)


def _weighted(pairs: Sequence[Tuple[float, float]]) -> float:
    """Quantity-weighted average of (price, quantity) pairs."""
    total = sum(q for _, q in pairs)
    return sum(p * q for p, q in pairs) / total


def _seconds(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds())


class TradeEmitter:
    """Pure transformation from matched legs into externally visible records."""

    @staticmethod
    def trade_id(
        account_id: str,
        instrument: str,
        entry_date: datetime,
        close_date: Optional[datetime],
        quantity: float,
        entry_fill_ids: Sequence[str],
        exit_fill_ids: Sequence[str],
    ) -> str:
        """
        Deterministic id: the same fills always produce the same trade id,
        so re-running the matcher over an identical fill set is idempotent.
        """
        key = "|".join([
            account_id,
            instrument,
            entry_date.isoformat(),
            close_date.isoformat() if close_date else "",
            repr(float(quantity)),
            "-".join(entry_fill_ids),
            "-".join(exit_fill_ids),
        ])
        return str(uuid.uuid5(TRADE_NAMESPACE, key))

    @staticmethod
    def emit(
        account_id: str,
        instrument: str,
        side: Direction,
        legs: List[MatchedLeg],
    ) -> Trade:
        """
        Assemble a closed trade from the legs one closing event consumed.

        A trade is held (pnl None) when any leg could not be priced.
        """
        if not legs:
            raise ValueError("Cannot emit a trade without matched legs")

        quantity = sum(leg.quantity for leg in legs)
        entry_price = _weighted([(leg.entry_price, leg.quantity) for leg in legs])
        close_price = _weighted([(leg.exit_price, leg.quantity) for leg in legs])
        entry_date = min(leg.opened_at for leg in legs)
        close_date = max(leg.closed_at for leg in legs)
        commission = sum(leg.entry_commission + leg.exit_commission for leg in legs)

        held = any(leg.raw_pnl is None for leg in legs)
        pnl = None if held else pnl_calc.round_pnl(sum(leg.raw_pnl for leg in legs))

        entry_fill_ids = _unique(fid for leg in legs for fid in leg.entry_fill_ids)
        exit_fill_ids = _unique(leg.exit_fill_id for leg in legs)

        return Trade(
            id=TradeEmitter.trade_id(
                account_id, instrument, entry_date, close_date, quantity, entry_fill_ids, exit_fill_ids
            ),
            account_id=account_id,
            instrument=instrument,
            side=side,
            quantity=quantity,
            entry_price=entry_price,
            close_price=close_price,
            entry_date=entry_date,
            close_date=close_date,
            pnl=pnl,
            commission=commission,
            time_in_position=_seconds(entry_date, close_date),
            entry_fill_ids=entry_fill_ids,
            exit_fill_ids=exit_fill_ids,
            held=held,
        )

    @staticmethod
    def open_report(
        position: OpenPosition,
        spec: Optional[ContractSpec],
        last_price: Optional[float] = None,
        as_of: Optional[datetime] = None,
    ) -> OpenPositionReport:
        """
        Report a position still open at the end of the stream.

        With a last-known price the close side is estimated (unrealized P&L);
        without one it is left unset and the report stays flagged as open.
        """
        lots = tuple(replace(lot, fill_ids=list(lot.fill_ids)) for lot in position.lots)
        quantity = position.quantity
        entry_date = position.opened_at
        entry_fill_ids = _unique(fid for lot in lots for fid in lot.fill_ids)

        close_price = None
        close_date = None
        estimate = None
        time_in_position = None
        estimated = last_price is not None

        if estimated:
            close_price = float(last_price)
            close_date = as_of
            if spec is not None:
                estimate = pnl_calc.round_pnl(sum(
                    pnl_calc.raw_pnl(position.side, lot.quantity, lot.price, close_price, spec)
                    for lot in lots
                ))
            if as_of is not None:
                time_in_position = _seconds(entry_date, as_of)

        pending = position.pending_legs
        realized_pnl = None
        if pending and all(leg.raw_pnl is not None for leg in pending):
            realized_pnl = pnl_calc.round_pnl(sum(leg.raw_pnl for leg in pending))

        return OpenPositionReport(
            id=TradeEmitter.trade_id(
                position.account_id, position.instrument, entry_date, None, quantity, entry_fill_ids, ()
            ),
            account_id=position.account_id,
            instrument=position.instrument,
            side=position.side,
            quantity=quantity,
            entry_price=position.average_price,
            entry_date=entry_date,
            commission=position.commission,
            peak_quantity=position.peak_quantity,
            entry_fill_ids=entry_fill_ids,
            lots=lots,
            close_price=close_price,
            close_date=close_date,
            pnl=estimate,
            time_in_position=time_in_position,
            estimated=estimated,
            realized_quantity=sum(leg.quantity for leg in pending),
            realized_pnl=realized_pnl,
        )
