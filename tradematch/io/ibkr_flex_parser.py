# tradematch/io/ibkr_flex_parser.py
"""
IBKR Flex Query XML normalizer.
Turns <Trade> rows of a Flex statement into Fills.
"""

import xml.etree.ElementTree as ET
from typing import List

from tradematch.domain.models import Fill, Problem
from tradematch.io.normalizers import FillNormalizer, NormalizedFills, parse_price, parse_quantity, parse_side
from tradematch.utils.logging import get_logger

logger = get_logger("ibkr_flex")


class IBKRFlexNormalizer(FillNormalizer):
    """Parse IBKR Flex Query XML exports."""

    name = "ibkr_flex"

    # Common IBKR timestamp formats
    TIMESTAMP_FORMATS = [
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d, %H:%M:%S",
        "%Y%m%d %H:%M:%S",
        "%Y%m%d;%H%M%S",
        "%Y-%m-%d;%H:%M:%S",
    ]

    def __init__(self, source_timezone: str = "US/Eastern"):
        # IBKR timestamps are in US/Eastern unless the query says otherwise
        super().__init__(source_timezone)

    @staticmethod
    def _clean_timestamp(ts_raw: str) -> str:
        # Drop a trailing zone label, e.g. "2025-01-02;09:31:00 US/Eastern"
        parts = ts_raw.split(" ")
        if len(parts) > 1 and "/" in parts[-1]:
            return " ".join(parts[:-1])
        return ts_raw

    def normalize(self, source: str) -> NormalizedFills:
        """
        Parse IBKR Flex Query XML.

        Args:
            source: Raw XML string from IBKR

        Returns:
            (fills, problems) - malformed <Trade> rows are skipped and reported
        """
        root = ET.fromstring(source)
        fills: List[Fill] = []
        problems: List[Problem] = []

        # Navigate: FlexQueryResponse -> FlexStatements -> FlexStatement -> Trades -> Trade
        for index, trade_elem in enumerate(root.findall(".//Trade")):
            account_id = trade_elem.get("accountId", "").strip()
            fill_id = trade_elem.get("tradeID", "").strip()
            symbol = trade_elem.get("symbol", "").strip()
            try:
                if not fill_id:
                    raise ValueError("missing tradeID")

                # Timestamp: use tradeTime (actual execution), fall back to orderTime
                ts_raw = trade_elem.get("tradeTime", "").strip() or trade_elem.get("orderTime", "").strip()
                if not ts_raw:
                    raise ValueError("missing tradeTime")

                # Flex reports sells with a negative quantity
                quantity = abs(parse_quantity(trade_elem.get("quantity", "0")))

                fills.append(Fill(
                    account_id=account_id,
                    instrument=symbol,
                    side=parse_side(trade_elem.get("buySell", "")),
                    quantity=quantity,
                    price=parse_price(trade_elem.get("tradePrice", "")),
                    # IBKR reports commission as a negative number
                    commission=abs(float(trade_elem.get("ibCommission", 0) or 0)),
                    timestamp=self.parse_timestamp(self._clean_timestamp(ts_raw)),
                    fill_id=fill_id,
                ))

            except ValueError as e:
                logger.warning("Skipped Flex trade", row=index, trade_id=fill_id, error=str(e))
                problems.append(Problem(
                    kind="invalid_fill",
                    message=f"Flex trade {fill_id or index}: {e}",
                    account_id=account_id or None,
                    instrument=symbol or None,
                    fill_id=fill_id or None,
                ))

        return self.dedupe(fills, problems), problems
