from __future__ import annotations

import pytz

from tradematch.domain.contract_specs import ContractSpecResolver
from tradematch.domain.models import ContractSpec, Side
from tradematch.io.ibkr_flex_parser import IBKRFlexNormalizer
from tradematch.io.importer import run_import


def test_parse_xml_smoke(parsed_fills):
    assert len(parsed_fills) == 2

    e0 = parsed_fills[0]
    assert e0.account_id == "U1234567"
    assert e0.fill_id == "0000a1"
    assert e0.instrument == "AAPL"
    assert e0.side == Side.BUY
    assert e0.quantity == 10
    assert e0.price == 190.12
    assert e0.commission == 1.0
    assert e0.timestamp.tzinfo is not None
    assert e0.timestamp.tzinfo == pytz.UTC
    assert (e0.timestamp.hour, e0.timestamp.minute) == (14, 31)

    e1 = parsed_fills[1]
    assert e1.fill_id == "0000a2"
    assert e1.side == Side.SELL
    assert e1.quantity == 5
    assert e1.commission == 0.5


def test_malformed_trade_is_reported(sample_xml):
    fills, problems = IBKRFlexNormalizer().normalize(sample_xml)

    assert len(fills) == 2
    assert len(problems) == 1
    assert problems[0].kind == "invalid_fill"
    assert problems[0].fill_id == "0000a3"


def test_duplicate_trade_ids_are_skipped():
    xml = """<FlexQueryResponse><FlexStatements><FlexStatement><Trades>
        <Trade accountId="U1" symbol="MSFT" buySell="BUY" tradeID="T1" tradeTime="2025-01-15 09:30:00"
               quantity="1" tradePrice="400" ibCommission="-1"/>
        <Trade accountId="U1" symbol="MSFT" buySell="BUY" tradeID="T1" tradeTime="2025-01-15 09:30:00"
               quantity="1" tradePrice="400" ibCommission="-1"/>
    </Trades></FlexStatement></FlexStatements></FlexQueryResponse>"""

    fills, problems = IBKRFlexNormalizer().normalize(xml)

    assert [f.fill_id for f in fills] == ["T1"]
    assert len(problems) == 1
    assert "duplicate" in problems[0].message


def test_flex_import_end_to_end(sample_xml):
    resolver = ContractSpecResolver(overrides={"AAPL": ContractSpec(tick_size=0.01, tick_value=0.01)})

    result = run_import(IBKRFlexNormalizer(), sample_xml, resolver)

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.quantity == 5
    assert trade.pnl == 4.4  # (191.00 - 190.12) * 5
    assert trade.commission == 1.0  # half of the 1.0 entry commission + 0.5 exit
    assert result.open_positions[0].quantity == 5
    assert [p.fill_id for p in result.skipped_fills] == ["0000a3"]
