from __future__ import annotations

from datetime import timedelta

import pytest

from tradematch.domain.emitter import TradeEmitter
from tradematch.domain.models import Direction, MatchedLeg

from conftest import BASE_TS


def _leg(quantity, entry_price, exit_price, raw_pnl, entry_ids=("E1",), exit_id="X1", opened_minutes=0):
    return MatchedLeg(
        quantity=quantity,
        entry_price=entry_price,
        exit_price=exit_price,
        entry_commission=0.5 * quantity,
        exit_commission=0.25 * quantity,
        entry_fill_ids=tuple(entry_ids),
        exit_fill_id=exit_id,
        opened_at=BASE_TS + timedelta(minutes=opened_minutes),
        closed_at=BASE_TS + timedelta(minutes=10),
        raw_pnl=raw_pnl,
    )


def test_emit_aggregates_legs():
    legs = [
        _leg(3, 100.0, 120.0, 60.0, entry_ids=("E1",), opened_minutes=0),
        _leg(1, 110.0, 120.0, 10.0, entry_ids=("E2",), opened_minutes=2),
    ]

    trade = TradeEmitter.emit("ACC1", "TEST", Direction.LONG, legs)

    assert trade.quantity == 4
    assert trade.entry_price == 102.5
    assert trade.close_price == 120.0
    assert trade.pnl == 70.0
    assert trade.commission == pytest.approx(3.0)
    assert trade.entry_date == BASE_TS
    assert trade.close_date == BASE_TS + timedelta(minutes=10)
    assert trade.time_in_position == 600
    assert trade.entry_fill_ids == ("E1", "E2")
    assert trade.exit_fill_ids == ("X1",)
    assert trade.net_pnl == 67.0
    assert not trade.held


def test_trade_id_is_deterministic_and_field_sensitive():
    legs = [_leg(2, 100.0, 101.0, 2.0)]

    first = TradeEmitter.emit("ACC1", "TEST", Direction.LONG, legs)
    second = TradeEmitter.emit("ACC1", "TEST", Direction.LONG, list(legs))
    other_account = TradeEmitter.emit("ACC2", "TEST", Direction.LONG, legs)
    other_exit = TradeEmitter.emit("ACC1", "TEST", Direction.LONG, [_leg(2, 100.0, 101.0, 2.0, exit_id="X2")])

    assert first.id == second.id
    assert first.id != other_account.id
    assert first.id != other_exit.id


def test_unpriced_leg_holds_trade():
    legs = [_leg(1, 100.0, 101.0, 1.0), _leg(1, 100.0, 101.0, None, entry_ids=("E2",))]

    trade = TradeEmitter.emit("ACC1", "BAD", Direction.SHORT, legs)

    assert trade.held
    assert trade.pnl is None
    assert trade.side == Direction.SHORT


def test_emit_requires_legs():
    with pytest.raises(ValueError):
        TradeEmitter.emit("ACC1", "TEST", Direction.LONG, [])
