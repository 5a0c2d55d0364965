from __future__ import annotations

from sqlmodel import select

from tradematch.db.models import TradeRecord
from tradematch.db.session import get_session, init_db
from tradematch.domain.matcher import match_fills
from tradematch.io.importer import TradeImporter


def test_import_is_idempotent(session, make_fill, resolver):
    fills = [
        make_fill("BUY", 3, 100.0),
        make_fill("BUY", 2, 110.0),
        make_fill("SELL", 4, 120.0),
        make_fill("SELL", 1, 121.0),
    ]

    trades = match_fills(fills, resolver).trades
    total, inserted, warnings = TradeImporter.import_trades(session, trades)
    assert (total, inserted, warnings) == (2, 2, [])

    # Re-running the matcher yields the same ids, so nothing new is stored
    rerun = match_fills(list(fills), resolver).trades
    total, inserted, warnings = TradeImporter.import_trades(session, rerun)
    assert total == 2
    assert inserted == 0
    assert len(warnings) == 2

    rows = session.exec(select(TradeRecord)).all()
    assert len(rows) == 2
    first = next(r for r in rows if r.id == trades[0].id)
    assert first.side == "LONG"
    assert first.quantity == 4
    assert first.pnl == 70.0
    assert first.entry_fill_ids == "F1,F2"
    assert first.exit_fill_ids == "F3"


def test_duplicates_within_batch_are_skipped(session, make_fill, resolver):
    trades = match_fills([make_fill("BUY", 1, 100.0), make_fill("SELL", 1, 101.0)], resolver).trades

    total, inserted, warnings = TradeImporter.import_trades(session, trades + trades)

    assert (total, inserted) == (2, 1)
    assert warnings[0].startswith("Skipped duplicate in batch")


def test_init_db_creates_trade_table(tmp_path, make_fill, resolver):
    engine = init_db(f"sqlite:///{tmp_path / 'db' / 'trades.db'}")
    trades = match_fills([make_fill("SELL", 2, 50.0), make_fill("BUY", 2, 48.5)], resolver).trades

    with get_session(engine) as session:
        assert TradeImporter.import_trades(session, trades)[1] == 1
        stored = session.exec(select(TradeRecord)).one()

    assert stored.side == "SHORT"
    assert stored.pnl == 3.0
    assert (tmp_path / "db" / "trades.db").exists()


def test_record_created_at_is_timezone_aware(make_fill, resolver):
    trade = match_fills([make_fill("BUY", 1, 100.0), make_fill("SELL", 1, 101.0)], resolver).trades[0]

    record = TradeRecord.from_trade(trade)

    assert record.created_at.tzinfo is not None
    assert record.created_at.utcoffset().total_seconds() == 0
