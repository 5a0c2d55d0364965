# tradematch/domain/contract_specs.py
"""
Contract spec resolution.
Maps instrument symbols to tick size/value, falling back to a configured
default for symbols nobody has registered yet.
"""

import re
import warnings
from typing import Dict, List, Mapping, Optional, Union

from tradematch import config
from tradematch.domain.errors import UnknownInstrument
from tradematch.domain.models import ContractSpec
from tradematch.domain.pnl import validate_spec
from tradematch.utils.logging import get_logger

logger = get_logger("contract_specs")


# Common CME group futures roots
KNOWN_SPECS: Dict[str, ContractSpec] = {
    "ES": ContractSpec(tick_size=0.25, tick_value=12.50),
    "MES": ContractSpec(tick_size=0.25, tick_value=1.25),
    "NQ": ContractSpec(tick_size=0.25, tick_value=5.00),
    "MNQ": ContractSpec(tick_size=0.25, tick_value=0.50),
    "YM": ContractSpec(tick_size=1.0, tick_value=5.00),
    "MYM": ContractSpec(tick_size=1.0, tick_value=0.50),
    "RTY": ContractSpec(tick_size=0.10, tick_value=5.00),
    "M2K": ContractSpec(tick_size=0.10, tick_value=0.50),
    "CL": ContractSpec(tick_size=0.01, tick_value=10.00),
    "MCL": ContractSpec(tick_size=0.01, tick_value=1.00),
    "GC": ContractSpec(tick_size=0.10, tick_value=10.00),
    "MGC": ContractSpec(tick_size=0.10, tick_value=1.00),
    "SI": ContractSpec(tick_size=0.005, tick_value=25.00),
    "ZN": ContractSpec(tick_size=1 / 64, tick_value=15.625),
    "ZB": ContractSpec(tick_size=1 / 32, tick_value=31.25),
    "ZF": ContractSpec(tick_size=1 / 128, tick_value=7.8125),
    "6E": ContractSpec(tick_size=0.00005, tick_value=6.25),
}

# Root + month code + 1-2 digit year, e.g. ESZ4, MNQH25
_FUTURES_CODE = re.compile(r"^([A-Z0-9]{1,4}?)([FGHJKMNQUVXZ])(\d{1,2})$")

SpecInput = Union[ContractSpec, Mapping[str, float]]


def normalize_symbol(instrument: str) -> str:
    return (instrument or "").strip().upper()


def futures_root(instrument: str) -> Optional[str]:
    """Root of a futures contract code (ESZ4 -> ES), or None if it is not one."""
    match = _FUTURES_CODE.match(normalize_symbol(instrument))
    return match.group(1) if match else None


def _as_spec(value: SpecInput) -> ContractSpec:
    if isinstance(value, ContractSpec):
        return value
    return ContractSpec(tick_size=float(value["tick_size"]), tick_value=float(value["tick_value"]))


class ContractSpecResolver:
    """Resolves symbols to contract specs; user overrides win over the built-in table."""

    def __init__(
        self,
        overrides: Optional[Mapping[str, SpecInput]] = None,
        default: Optional[ContractSpec] = None,
        known: Optional[Mapping[str, ContractSpec]] = None,
    ):
        self.default = validate_spec(default or config.default_spec(), "<default>")
        self._known: Dict[str, ContractSpec] = {
            normalize_symbol(k): v for k, v in (KNOWN_SPECS if known is None else known).items()
        }
        self._overrides: Dict[str, ContractSpec] = {}
        self._unknown: Dict[str, None] = {}  # insertion-ordered set
        if overrides:
            self.override_many(overrides)

    @classmethod
    def from_config(cls) -> "ContractSpecResolver":
        """Resolver with overrides from the configured YAML file, if any."""
        return cls(overrides=config.load_contract_specs())

    def _lookup(self, symbol: str) -> Optional[ContractSpec]:
        for table in (self._overrides, self._known):
            if symbol in table:
                return table[symbol]
        root = futures_root(symbol)
        if root:
            for table in (self._overrides, self._known):
                if root in table:
                    return table[root]
        return None

    def is_known(self, instrument: str) -> bool:
        return self._lookup(normalize_symbol(instrument)) is not None

    def resolve(self, instrument: str) -> ContractSpec:
        """
        Contract spec for an instrument.

        Unseen symbols get the default spec and are recorded as unknown
        until the caller overrides them.

        Raises:
            InvalidSpec: if the registered spec has a non-positive tick size or value
        """
        symbol = normalize_symbol(instrument)
        spec = self._lookup(symbol)
        if spec is None:
            if symbol not in self._unknown:
                logger.warning("Unknown instrument, using default spec", instrument=symbol,
                               tick_size=self.default.tick_size, tick_value=self.default.tick_value)
                warnings.warn(f"No contract spec for {symbol}; default spec applied", UnknownInstrument, stacklevel=2)
            self._unknown[symbol] = None
            return self.default
        return validate_spec(spec, symbol)

    def override(self, instrument: str, spec: SpecInput) -> ContractSpec:
        """Register a user-supplied spec for an instrument (or futures root)."""
        symbol = normalize_symbol(instrument)
        spec = validate_spec(_as_spec(spec), symbol)
        self._overrides[symbol] = spec
        self._unknown.pop(symbol, None)
        for pending in [s for s in self._unknown if futures_root(s) == symbol]:
            self._unknown.pop(pending)
        logger.info("Contract spec override", instrument=symbol,
                    tick_size=spec.tick_size, tick_value=spec.tick_value)
        return spec

    def override_many(self, overrides: Mapping[str, SpecInput]) -> None:
        for instrument, spec in overrides.items():
            self.override(instrument, spec)

    @property
    def unknown_instruments(self) -> List[str]:
        return list(self._unknown)
