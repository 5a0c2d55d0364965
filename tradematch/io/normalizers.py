# tradematch/io/normalizers.py
"""
Fill normalizers: one adapter per source format, all feeding the same matcher.

Row-based exports are expected as already-parsed dicts (header detection and
CSV parsing happen upstream); the caller supplies the column mapping.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Tuple

import pytz

from tradematch import config
from tradematch.domain.models import Fill, Problem, Side
from tradematch.utils.logging import get_logger

logger = get_logger("normalizers")

NormalizedFills = Tuple[List[Fill], List[Problem]]

BUY_ALIASES = {"B", "BUY", "BOT", "BOUGHT", "LONG"}
SELL_ALIASES = {"S", "SELL", "SLD", "SOLD", "SHORT"}

# Third digit of a 32nds quote counts quarters of a 32nd
_QUARTER_32NDS = {"0": 0.0, "2": 0.25, "5": 0.5, "7": 0.75}


def parse_side(value: str) -> Side:
    side = (value or "").strip().upper()
    if side in BUY_ALIASES:
        return Side.BUY
    if side in SELL_ALIASES:
        return Side.SELL
    raise ValueError(f"Unknown side: {value!r}")


def parse_price(value: Any) -> float:
    """
    Decimal price from a quote string.

    Handles plain decimals ("4512.25", "1,234.5") and bond-style 32nds
    ("110'16" = 110.5, "110'165" = 110 + 16.5/32).
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value or "").strip().replace(",", "")
    if not text:
        raise ValueError("Empty price")
    if "'" not in text:
        return float(text)

    whole, fraction = text.split("'", 1)
    if not fraction.isdigit() or len(fraction) not in (2, 3):
        raise ValueError(f"Could not parse 32nds price: {value!r}")
    thirty_seconds = int(fraction[:2])
    if len(fraction) == 3:
        thirty_seconds += _QUARTER_32NDS.get(fraction[2], int(fraction[2]) / 10)
    if thirty_seconds >= 32:
        raise ValueError(f"Could not parse 32nds price: {value!r}")
    base = int(whole)
    sign = -1 if whole.strip().startswith("-") else 1
    return base + sign * thirty_seconds / 32


def parse_quantity(value: Any) -> float:
    if isinstance(value, (int, float)):
        qty = float(value)
    else:
        qty = float(str(value).strip().replace(",", ""))
    return int(qty) if qty.is_integer() else qty


class FillNormalizer:
    """Turns one source format into Fills."""

    name = "base"

    TIMESTAMP_FORMATS = [
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d %H:%M:%S.%f",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%m/%d/%Y %H:%M:%S",
        "%d/%m/%Y %H:%M",
    ]

    def __init__(self, source_timezone: Optional[str] = None):
        self.tz = pytz.timezone(source_timezone or config.REPORT_TIMEZONE)

    def normalize(self, source) -> NormalizedFills:
        """
        Args:
            source: Raw export in this adapter's format

        Returns:
            (fills in source order, problems for rows that were skipped)
        """
        raise NotImplementedError

    def parse_timestamp(self, value: Any) -> datetime:
        """Parse a timestamp into an aware UTC datetime; naive values are in the source timezone."""
        if isinstance(value, datetime):
            dt = value
        else:
            text = str(value or "").strip()
            dt = None
            for fmt in self.TIMESTAMP_FORMATS:
                try:
                    dt = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            if dt is None:
                try:
                    dt = datetime.fromisoformat(text)
                except ValueError:
                    raise ValueError(f"Could not parse timestamp: {value!r}")

        if dt.tzinfo is None:
            dt = self.tz.localize(dt)
        return dt.astimezone(pytz.UTC)

    @staticmethod
    def dedupe(fills: Iterable[Fill], problems: List[Problem]) -> List[Fill]:
        """Drop repeated fill ids within one source; later copies are reported."""
        seen = set()
        unique = []
        for fill in fills:
            key = (fill.account_id, fill.fill_id)
            if key in seen:
                problems.append(Problem(
                    kind="invalid_fill",
                    message=f"Skipped duplicate fill in source: {fill.instrument} {fill.fill_id}",
                    account_id=fill.account_id,
                    instrument=fill.instrument,
                    fill_id=fill.fill_id,
                ))
                continue
            seen.add(key)
            unique.append(fill)
        return unique


@dataclass
class ColumnMap:
    """Column names of a row-based export. Defaults follow the Rithmic order history export."""
    instrument: str = "Symbol"
    side: str = "Buy/Sell"
    quantity: str = "Qty Filled"
    price: str = "Avg Fill Price"
    timestamp: str = "Update Time"
    fill_id: Optional[str] = "Order Number"
    account: Optional[str] = "Account"
    commission: Optional[str] = None  # Total commission of the row
    commission_rate: Optional[str] = "Commission Fill Rate"  # Per contract


class MappedRowNormalizer(FillNormalizer):
    """Normalizes dict rows using a caller-supplied column mapping."""

    name = "rows"

    def __init__(
        self,
        columns: Optional[ColumnMap] = None,
        default_account: str = "default",
        source_timezone: Optional[str] = None,
        signed_quantity: bool = False,
    ):
        super().__init__(source_timezone)
        self.columns = columns or ColumnMap()
        self.default_account = default_account
        # Quantity sign carries the side (negative = sell) when the side column is empty
        self.signed_quantity = signed_quantity

    def _get(self, row: Mapping[str, Any], column: Optional[str]) -> str:
        if not column:
            return ""
        value = row.get(column)
        return "" if value is None else str(value).strip()

    def _row_to_fill(self, row: Mapping[str, Any], index: int) -> Fill:
        cols = self.columns

        quantity = parse_quantity(self._get(row, cols.quantity))
        side_text = self._get(row, cols.side)
        if self.signed_quantity and not side_text:
            side = Side.BUY if quantity > 0 else Side.SELL
        else:
            side = parse_side(side_text)
        if self.signed_quantity:
            quantity = abs(quantity)

        commission = 0.0
        if cols.commission and self._get(row, cols.commission):
            commission = abs(float(self._get(row, cols.commission)))
        elif cols.commission_rate and self._get(row, cols.commission_rate):
            commission = abs(float(self._get(row, cols.commission_rate))) * abs(quantity)

        instrument = self._get(row, cols.instrument)
        if not instrument:
            raise ValueError("Missing instrument")

        return Fill(
            account_id=self._get(row, cols.account) or self.default_account,
            instrument=instrument,
            side=side,
            quantity=quantity,
            price=parse_price(self._get(row, cols.price)),
            commission=commission,
            timestamp=self.parse_timestamp(self._get(row, cols.timestamp)),
            fill_id=self._get(row, cols.fill_id) or f"row-{index}",
        )

    def normalize(self, source: Iterable[Mapping[str, Any]]) -> NormalizedFills:
        fills: List[Fill] = []
        problems: List[Problem] = []

        for index, row in enumerate(source):
            try:
                fills.append(self._row_to_fill(row, index))
            except (ValueError, TypeError) as e:
                logger.warning("Skipped row", source=self.name, row=index, error=str(e))
                problems.append(Problem(
                    kind="invalid_fill",
                    message=f"Row {index}: {e}",
                    account_id=self._get(row, self.columns.account) or None,
                    instrument=self._get(row, self.columns.instrument) or None,
                    fill_id=self._get(row, self.columns.fill_id) or None,
                ))

        return self.dedupe(fills, problems), problems
