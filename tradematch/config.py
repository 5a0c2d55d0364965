# tradematch/config.py
"""Settings read from the environment, plus contract spec file loading."""

import os
import logging
from pathlib import Path
from typing import Dict, Optional

import yaml

from tradematch.domain.models import ContractSpec, LotOrder, TradeGrouping
from tradematch.utils.logging import get_logger

logger = get_logger("config")

# Default spec for unknown instruments: one point of price is worth one unit of currency
DEFAULT_TICK_SIZE = float(os.getenv("TRADEMATCH_DEFAULT_TICK_SIZE", "1.0"))
DEFAULT_TICK_VALUE = float(os.getenv("TRADEMATCH_DEFAULT_TICK_VALUE", "1.0"))

LOT_ORDER = os.getenv("TRADEMATCH_LOT_ORDER", "FIFO").strip().upper()

TRADE_GROUPING = os.getenv("TRADEMATCH_TRADE_GROUPING", "PER_FILL").strip().upper()

REPORT_TIMEZONE = os.getenv("TRADEMATCH_REPORT_TIMEZONE", "US/Eastern")

CONTRACT_SPECS_PATH = os.getenv("TRADEMATCH_CONTRACT_SPECS")

LOG_LEVEL = os.getenv("TRADEMATCH_LOG_LEVEL", "INFO").strip().upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./trade_matches.db")


def default_spec() -> ContractSpec:
    return ContractSpec(tick_size=DEFAULT_TICK_SIZE, tick_value=DEFAULT_TICK_VALUE)


def default_lot_order() -> LotOrder:
    try:
        return LotOrder(LOT_ORDER)
    except ValueError:
        logger.warning("Unknown lot order, using FIFO", lot_order=LOT_ORDER)
        return LotOrder.FIFO


def default_trade_grouping() -> TradeGrouping:
    try:
        return TradeGrouping(TRADE_GROUPING)
    except ValueError:
        logger.warning("Unknown trade grouping, using PER_FILL", trade_grouping=TRADE_GROUPING)
        return TradeGrouping.PER_FILL


def log_level() -> int:
    level = logging.getLevelName(LOG_LEVEL)
    return level if isinstance(level, int) else logging.INFO


def load_contract_specs(path: Optional[str] = None) -> Dict[str, ContractSpec]:
    """
    Load contract spec overrides from a YAML mapping.

    Expected layout:

        ES:
          tick_size: 0.25
          tick_value: 12.5

    Values are not validated here; the resolver rejects non-positive specs
    when they are registered.

    Args:
        path: YAML file; falls back to TRADEMATCH_CONTRACT_SPECS

    Returns:
        Mapping of symbol -> ContractSpec (empty if no file is configured)
    """
    path = path or CONTRACT_SPECS_PATH
    if not path:
        return {}

    with Path(path).open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Contract spec file must contain a mapping: {path}")

    specs: Dict[str, ContractSpec] = {}
    for symbol, payload in raw.items():
        if not isinstance(payload, dict):
            raise ValueError(f"Contract spec for {symbol} must be a mapping")
        specs[str(symbol)] = ContractSpec(
            tick_size=float(payload["tick_size"]),
            tick_value=float(payload["tick_value"]),
        )

    logger.info("Loaded contract specs", path=str(path), count=len(specs))
    return specs
