# tradematch/domain/matcher.py
"""
Position matching from fills.
Implements FIFO (or LIFO) lot matching, partial closes, position growth and
reversals, one open position per (account, instrument). Trades are emitted per
closing fill or, with round-trip grouping, once per flat-to-flat cycle.
"""

import math
import numbers
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from tradematch import config
from tradematch.domain import pnl
from tradematch.domain.contract_specs import ContractSpecResolver, SpecInput, futures_root, normalize_symbol
from tradematch.domain.emitter import TradeEmitter
from tradematch.domain.errors import InvalidFill, InvalidSpec
from tradematch.domain.models import (
    ContractSpec,
    Fill,
    LotOrder,
    MatchedLeg,
    MatchResult,
    OpenLot,
    OpenPosition,
    Problem,
    Side,
    Trade,
    TradeGrouping,
)
from tradematch.utils.logging import get_logger

logger = get_logger("matcher")

PartitionKey = Tuple[str, str]
LastPrices = Mapping[Union[str, PartitionKey], float]

_NUMBER = (numbers.Real, Decimal)


def _finite_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, _NUMBER):
        return False
    return math.isfinite(float(value))


def check_fill(fill: Fill) -> Tuple[Side, int]:
    """
    Validate a fill before it reaches the position state.

    Returns:
        The fill's side as a Side and its quantity as an int

    Raises:
        InvalidFill: non-positive or fractional quantity, unparsable price, commission
            or timestamp, timestamp without a timezone, unknown side
    """
    fill_id = getattr(fill, "fill_id", None)
    try:
        side = Side(fill.side)
    except ValueError:
        raise InvalidFill(f"unknown side {fill.side!r}", fill_id)
    if not _finite_number(fill.quantity) or fill.quantity <= 0:
        raise InvalidFill(f"non-positive quantity {fill.quantity!r}", fill_id)
    if not float(fill.quantity).is_integer():
        raise InvalidFill(f"fractional quantity {fill.quantity!r}", fill_id)
    if not _finite_number(fill.price):
        raise InvalidFill(f"unparsable price {fill.price!r}", fill_id)
    if not _finite_number(fill.commission):
        raise InvalidFill(f"unparsable commission {fill.commission!r}", fill_id)
    if not isinstance(fill.timestamp, datetime):
        raise InvalidFill(f"unparsable timestamp {fill.timestamp!r}", fill_id)
    if fill.timestamp.tzinfo is None or fill.timestamp.utcoffset() is None:
        raise InvalidFill("timestamp has no timezone", fill_id)
    return side, int(fill.quantity)


def _invalid_fill_problem(fill: Fill, exc: InvalidFill) -> Problem:
    logger.warning("Skipped fill", fill_id=exc.fill_id, reason=exc.reason)
    return Problem(
        kind="invalid_fill",
        message=str(exc),
        account_id=getattr(fill, "account_id", None),
        instrument=getattr(fill, "instrument", None),
        fill_id=exc.fill_id,
    )


class PositionMatcher:
    """
    Incremental matcher holding one open position per (account, instrument).

    Feed fills in chronological order with process(); take snapshot() for
    partial output at any point between fills, or finish() once the stream
    is drained.
    """

    def __init__(
        self,
        resolver: Optional[ContractSpecResolver] = None,
        lot_order: Optional[LotOrder] = None,
        specs: Optional[Mapping[str, Optional[ContractSpec]]] = None,
        grouping: Optional[TradeGrouping] = None,
    ):
        self.resolver = resolver or ContractSpecResolver()
        self.lot_order = LotOrder(lot_order) if lot_order else config.default_lot_order()
        self.grouping = TradeGrouping(grouping) if grouping else config.default_trade_grouping()
        self.positions: Dict[PartitionKey, OpenPosition] = {}
        self.trades: List[Trade] = []
        self.problems: List[Problem] = []
        # Resolved specs per instrument; None marks an invalid spec
        self._specs: Dict[str, Optional[ContractSpec]] = dict(specs or {})
        self._unknown: Dict[str, None] = {}
        self._last_seen: Dict[PartitionKey, datetime] = {}

    # Contract specs

    @property
    def resolved_specs(self) -> Dict[str, Optional[ContractSpec]]:
        return dict(self._specs)

    @property
    def unknown_instruments(self) -> List[str]:
        return list(self._unknown)

    def spec_for(self, instrument: str) -> Optional[ContractSpec]:
        """Resolve and cache the contract spec of an instrument; None if it is invalid."""
        instrument = normalize_symbol(instrument)
        if instrument not in self._specs:
            if not self.resolver.is_known(instrument) and instrument not in self._unknown:
                self._unknown[instrument] = None
                self.problems.append(Problem(
                    kind="unknown_instrument",
                    message=f"No contract spec for {instrument}; default spec applied",
                    instrument=instrument,
                ))
            try:
                self._specs[instrument] = self.resolver.resolve(instrument)
            except InvalidSpec as exc:
                logger.warning("Invalid contract spec, trades held", instrument=instrument, error=str(exc))
                self._specs[instrument] = None
                self.problems.append(Problem(kind="invalid_spec", message=str(exc), instrument=instrument))
        return self._specs[instrument]

    def override_spec(self, instrument: str, spec: SpecInput) -> ContractSpec:
        """Register a corrected spec; applies to every later match of the instrument."""
        instrument = normalize_symbol(instrument)
        resolved = self.resolver.override(instrument, spec)
        # A root override ("ES") also covers cached contract codes ("ESZ4")
        for cache in (self._specs, self._unknown):
            for symbol in [s for s in cache if s == instrument or futures_root(s) == instrument]:
                cache.pop(symbol)
        return resolved

    # Fill processing

    def process(self, fill: Fill) -> List[Trade]:
        """
        Apply one fill to its position.

        Returns:
            Trades emitted by this fill (empty unless it reduced a position)
        """
        try:
            side, quantity = check_fill(fill)
        except InvalidFill as exc:
            self.problems.append(_invalid_fill_problem(fill, exc))
            return []

        key = (str(fill.account_id), normalize_symbol(fill.instrument))
        self._track_order(key, fill)
        spec = self.spec_for(key[1])

        price = float(fill.price)
        commission = float(fill.commission)

        position = self.positions.get(key)
        if position is None:
            self._open(key, side, quantity, price, commission, fill)
            return []

        if side.direction == position.side:
            position.add_lot(OpenLot(
                quantity=quantity,
                price=price,
                commission=commission,
                fill_ids=[fill.fill_id],
                opened_at=fill.timestamp,
            ))
            return []

        trade = self._reduce(position, side, fill, quantity, price, commission, spec)
        return [trade] if trade is not None else []

    def process_many(self, fills: Iterable[Fill]) -> List[Trade]:
        emitted: List[Trade] = []
        for fill in fills:
            emitted.extend(self.process(fill))
        return emitted

    def _track_order(self, key: PartitionKey, fill: Fill) -> None:
        last = self._last_seen.get(key)
        if last is not None and fill.timestamp < last:
            logger.warning("Fill out of chronological order", fill_id=fill.fill_id,
                           account_id=key[0], instrument=key[1])
            self.problems.append(Problem(
                kind="out_of_order",
                message=f"Fill {fill.fill_id} at {fill.timestamp.isoformat()} precedes {last.isoformat()}; "
                        "processed in the order given",
                account_id=key[0],
                instrument=key[1],
                fill_id=fill.fill_id,
            ))
            return
        self._last_seen[key] = fill.timestamp

    def _open(self, key: PartitionKey, side: Side, quantity, price: float, commission: float, fill: Fill) -> None:
        position = OpenPosition(account_id=key[0], instrument=key[1], side=side.direction)
        position.add_lot(OpenLot(
            quantity=quantity,
            price=price,
            commission=commission,
            fill_ids=[fill.fill_id],
            opened_at=fill.timestamp,
        ))
        self.positions[key] = position

    def _next_lot(self, position: OpenPosition) -> OpenLot:
        return position.lots[0] if self.lot_order == LotOrder.FIFO else position.lots[-1]

    def _drop_lot(self, position: OpenPosition) -> None:
        if self.lot_order == LotOrder.FIFO:
            position.lots.popleft()
        else:
            position.lots.pop()

    def _reduce(
        self,
        position: OpenPosition,
        side: Side,
        fill: Fill,
        quantity: int,
        price: float,
        commission: float,
        spec: Optional[ContractSpec],
    ) -> Optional[Trade]:
        """
        Close lots against an opposing fill; reverse if the fill outlasts the position.

        Returns the emitted trade, or None while a round trip is still open.
        """
        remaining = quantity
        legs: List[MatchedLeg] = []

        while remaining > 0 and position.lots:
            lot = self._next_lot(position)
            matched = min(lot.quantity, remaining)

            entry_commission = lot.commission * matched / lot.quantity
            exit_commission = commission * matched / quantity
            raw = None
            if spec is not None:
                raw = pnl.raw_pnl(position.side, matched, lot.price, price, spec)

            legs.append(MatchedLeg(
                quantity=matched,
                entry_price=lot.price,
                exit_price=price,
                entry_commission=entry_commission,
                exit_commission=exit_commission,
                entry_fill_ids=tuple(lot.fill_ids),
                exit_fill_id=fill.fill_id,
                opened_at=lot.opened_at,
                closed_at=fill.timestamp,
                raw_pnl=raw,
            ))

            lot.quantity -= matched
            lot.commission -= entry_commission
            remaining -= matched
            if lot.quantity == 0:
                self._drop_lot(position)

        trade = None
        if self.grouping == TradeGrouping.PER_FILL or not position.lots:
            trade = self._emit(position, position.pending_legs + legs, fill)
            position.pending_legs = []
        else:
            position.pending_legs.extend(legs)

        if not position.lots:
            del self.positions[position.key]
            if remaining > 0:
                self._open(position.key, side, remaining, price, commission * remaining / quantity, fill)

        return trade

    def _emit(self, position: OpenPosition, legs: List[MatchedLeg], fill: Fill) -> Trade:
        trade = TradeEmitter.emit(position.account_id, position.instrument, position.side, legs)
        self.trades.append(trade)
        logger.debug("Trade emitted", trade_id=trade.id, instrument=trade.instrument,
                     side=trade.side.value, quantity=trade.quantity, pnl=trade.pnl)

        if trade.held:
            self.problems.append(Problem(
                kind="invalid_spec",
                message=f"P&L held for trade on {trade.instrument} until its contract spec is corrected",
                account_id=trade.account_id,
                instrument=trade.instrument,
                fill_id=fill.fill_id,
                trade_id=trade.id,
            ))
        return trade

    # Results

    def _last_price(self, last_prices: Optional[LastPrices], key: PartitionKey) -> Optional[float]:
        if not last_prices:
            return None
        if key in last_prices:
            return last_prices[key]
        return last_prices.get(key[1])

    def _result(
        self,
        complete: bool,
        last_prices: Optional[LastPrices] = None,
        as_of: Optional[datetime] = None,
    ) -> MatchResult:
        open_positions = [
            TradeEmitter.open_report(
                position,
                self._specs.get(key[1]),
                last_price=self._last_price(last_prices, key),
                as_of=as_of or self._last_seen.get(key),
            )
            for key, position in self.positions.items()
        ]
        return MatchResult(
            trades=list(self.trades),
            open_positions=open_positions,
            unknown_instruments=list(self._unknown),
            problems=list(self.problems),
            complete=complete,
        )

    def snapshot(self, last_prices: Optional[LastPrices] = None, as_of: Optional[datetime] = None) -> MatchResult:
        """Partial output of a stream that may still have fills to come."""
        return self._result(False, last_prices, as_of)

    def finish(self, last_prices: Optional[LastPrices] = None, as_of: Optional[datetime] = None) -> MatchResult:
        """Output of a fully drained stream; open positions are reported, not dropped."""
        return self._result(True, last_prices, as_of)


def sort_fills(fills: Iterable[Fill]) -> List[Fill]:
    """Chronological order; ties keep ingestion order (sort is stable)."""
    return sorted(fills, key=lambda f: f.timestamp)


def partition_fills(fills: Iterable[Fill]) -> "OrderedDict[PartitionKey, List[Fill]]":
    partitions: "OrderedDict[PartitionKey, List[Fill]]" = OrderedDict()
    for fill in fills:
        key = (str(fill.account_id), normalize_symbol(fill.instrument))
        partitions.setdefault(key, []).append(fill)
    return partitions


def match_fills(
    fills: Iterable[Fill],
    resolver: Optional[ContractSpecResolver] = None,
    *,
    overrides: Optional[Mapping[str, SpecInput]] = None,
    lot_order: Optional[LotOrder] = None,
    grouping: Optional[TradeGrouping] = None,
    last_prices: Optional[LastPrices] = None,
    as_of: Optional[datetime] = None,
    max_workers: Optional[int] = None,
) -> MatchResult:
    """
    Match a batch of fills into closed trades.

    Invalid fills are skipped and reported; the rest of their partition is
    still matched. Contract specs are resolved for every instrument before
    matching starts, so partitions can run on worker threads.

    Args:
        fills: Normalized fills, in ingestion order
        resolver: Contract spec source (a default resolver if omitted)
        overrides: Caller-supplied {symbol: spec} map applied to the resolver first
        lot_order: FIFO (default from config) or LIFO
        grouping: PER_FILL (default from config) or ROUND_TRIP
        last_prices: {instrument or (account, instrument): price} to estimate open positions
        as_of: Timestamp used for estimated open positions
        max_workers: Match partitions on a thread pool when greater than 1

    Returns:
        MatchResult with trades, open positions, unknown instruments and problems
    """
    resolver = resolver or ContractSpecResolver()
    if overrides:
        resolver.override_many(overrides)
    lot_order = LotOrder(lot_order) if lot_order else config.default_lot_order()
    grouping = TradeGrouping(grouping) if grouping else config.default_trade_grouping()

    problems: List[Problem] = []
    valid: List[Fill] = []
    total = 0
    for fill in fills:
        total += 1
        try:
            check_fill(fill)
        except InvalidFill as exc:
            problems.append(_invalid_fill_problem(fill, exc))
            continue
        valid.append(fill)

    partitions = partition_fills(sort_fills(valid))

    planner = PositionMatcher(resolver, lot_order)
    for _, instrument in partitions:
        planner.spec_for(instrument)
    specs = planner.resolved_specs

    def run(partition: List[Fill]) -> MatchResult:
        matcher = PositionMatcher(resolver, lot_order, specs=specs, grouping=grouping)
        matcher.process_many(partition)
        return matcher.finish(last_prices=last_prices, as_of=as_of)

    if max_workers and max_workers > 1 and len(partitions) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(run, partitions.values()))
    else:
        results = [run(partition) for partition in partitions.values()]

    head = MatchResult(unknown_instruments=planner.unknown_instruments, problems=problems + planner.problems)
    result = MatchResult.merge([head] + results)

    logger.info(
        "Matched fills",
        fills=total,
        skipped=len(problems),
        partitions=len(partitions),
        trades=len(result.trades),
        open_positions=len(result.open_positions),
        unknown_instruments=len(result.unknown_instruments),
        lot_order=lot_order.value,
        grouping=grouping.value,
    )
    return result
