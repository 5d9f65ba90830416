"""
Shared fixtures: snapshot and BTC-input factories with complete, neutral data.
"""

import pytest

from btc_state import BtcStateInput
from rolling import dated_series
from snapshots import IndicatorSnapshot

AS_OF = "2026-02-01"


def _snapshot(indicator: str, **overrides) -> IndicatorSnapshot:
    base = dict(
        indicator=indicator,
        display_name=indicator,
        latest_value=100.0,
        change_1d=0.0,
        change_7d=0.0,
        change_30d=0.0,
        ma20=95.0,
        above_ma20=True,
    )
    base.update(overrides)
    return IndicatorSnapshot(**base)


def _btc_input(**overrides) -> BtcStateInput:
    base = dict(
        btc_price=100000.0,
        btc_price_7d_pct=5.0,
        btc_price_30d_pct=10.0,
        funding_latest=0.0001,
        oi_latest=60e9,
        liq_24h=50e6,
        stablecoin_latest=260e9,
        stablecoin_7d_pct=2.5,
        stablecoin_30d_pct=5.0,
        oi_7d_ago=55e9,
        funding_7d_history=dated_series([0.0002] * 7, AS_OF),
        liq_7d_history=dated_series([40e6, 45e6, 50e6, 55e6, 45e6, 40e6, 50e6], AS_OF),
        previous_state=None,
        as_of_date=AS_OF,
    )
    base.update(overrides)
    return BtcStateInput(**base)


@pytest.fixture
def make_snapshot():
    return _snapshot


@pytest.fixture
def make_btc_input():
    return _btc_input


@pytest.fixture
def neutral_snapshots():
    """QQQ/GLD/VIX/BTC with every rule evaluable and none firing."""
    return [
        _snapshot("QQQ", change_1d=0.3),
        _snapshot("GLD", change_1d=0.8),
        _snapshot("VIXCLS", latest_value=15.0),
        _snapshot("BTC-USD", change_1d=-0.5, above_ma20=False),
    ]
