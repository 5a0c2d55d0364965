"""Test configuration and fixtures."""

import itertools
from datetime import datetime, timedelta

import pytest
import pytz
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from tradematch.db.models import TradeRecord  # noqa: F401 - registers the table
from tradematch.domain.contract_specs import ContractSpecResolver
from tradematch.domain.models import ContractSpec, Fill, Side
from tradematch.io.ibkr_flex_parser import IBKRFlexNormalizer

BASE_TS = datetime(2025, 1, 2, 14, 30, 0, tzinfo=pytz.UTC)

UNIT_SPEC = ContractSpec(tick_size=1.0, tick_value=1.0)


@pytest.fixture(name="session")
def session_fixture():
    """Create in-memory SQLite test database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="make_fill")
def make_fill_fixture():
    """Build fills one minute apart unless a minute offset is given."""
    counter = itertools.count(1)

    def _make(
        side,
        quantity,
        price,
        minutes=None,
        instrument="TEST",
        account_id="ACC1",
        commission=0.0,
        fill_id=None,
    ):
        n = next(counter)
        return Fill(
            account_id=account_id,
            instrument=instrument,
            side=Side(side) if side in ("BUY", "SELL") else side,
            quantity=quantity,
            price=price,
            commission=commission,
            timestamp=BASE_TS + timedelta(minutes=n if minutes is None else minutes),
            fill_id=fill_id or f"F{n}",
        )

    return _make


@pytest.fixture(name="resolver")
def resolver_fixture():
    """Resolver where TEST is one currency unit per point."""
    return ContractSpecResolver(overrides={"TEST": UNIT_SPEC}, default=UNIT_SPEC)


@pytest.fixture(name="sample_xml")
def sample_xml_fixture():
    """Provide sample IBKR XML."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<FlexQueryResponse queryName="Trade Summary">
    <FlexStatements>
        <FlexStatement accountId="U1234567" fromDate="2025-01-01" toDate="2025-01-31">
            <Trades>
                <Trade accountId="U1234567" assetCategory="STK" currency="USD" conid="265598" symbol="AAPL"
                       buySell="BUY" tradeID="0000a1" tradeTime="2025-01-02;09:31:00 US/Eastern"
                       quantity="10" tradePrice="190.12" ibCommission="-1.0"
                       exchange="NASDAQ" orderType="LMT">
                </Trade>
                <Trade accountId="U1234567" assetCategory="STK" currency="USD" conid="265598" symbol="AAPL"
                       buySell="SELL" tradeID="0000a2" tradeTime="2025-01-02 10:15:00"
                       quantity="-5" tradePrice="191.00" ibCommission="-0.5"
                       exchange="NASDAQ" orderType="LMT">
                </Trade>
                <Trade accountId="U1234567" assetCategory="STK" currency="USD" conid="265598" symbol="AAPL"
                       buySell="SELL" tradeID="0000a3" tradeTime="2025-01-02 10:20:00"
                       quantity="-5" tradePrice="n/a" ibCommission="-0.5"
                       exchange="NASDAQ" orderType="LMT">
                </Trade>
            </Trades>
        </FlexStatement>
    </FlexStatements>
</FlexQueryResponse>
"""


@pytest.fixture(name="parsed_fills")
def parsed_fills_fixture(sample_xml):
    fills, _ = IBKRFlexNormalizer().normalize(sample_xml)
    return fills
