from __future__ import annotations

import pytest

from tradematch.domain import pnl
from tradematch.domain.errors import InvalidSpec
from tradematch.domain.models import ContractSpec, Direction

ES_LIKE = ContractSpec(tick_size=0.25, tick_value=5.0)


def test_long_pnl_counts_ticks():
    assert pnl.ticks(100.00, 101.00, ES_LIKE) == 4
    assert pnl.calculate(Direction.LONG, 2, 100.00, 101.00, ES_LIKE) == 40.00


def test_short_pnl_has_opposite_sign():
    assert pnl.calculate(Direction.SHORT, 2, 100.00, 101.00, ES_LIKE) == -40.00


def test_raw_pnl_is_not_rounded():
    spec = ContractSpec(tick_size=3.0, tick_value=1.0)
    raw = pnl.raw_pnl(Direction.LONG, 1, 100.0, 101.0, spec)
    assert raw == pytest.approx(1 / 3)
    assert raw != round(raw, 2)
    assert pnl.calculate(Direction.LONG, 1, 100.0, 101.0, spec) == 0.33


@pytest.mark.parametrize("tick_size,tick_value", [(0, 5.0), (-0.25, 5.0), (0.25, 0), (0.25, -1)])
def test_invalid_spec_raises(tick_size, tick_value):
    with pytest.raises(InvalidSpec):
        pnl.calculate(Direction.LONG, 1, 100.0, 101.0, ContractSpec(tick_size, tick_value))
