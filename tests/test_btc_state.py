"""
Tests for the BTC leverage-state classifier and its evidence chain.
"""

import itertools

import pytest

from btc_state import (
    BtcState, BtcStateInput, LiquidityTag, StateInputs, analyze_btc_market,
    determine_state, liquidations_7d, liquidity_tag, oi_7d_change,
)
from confidence import Stability
from rolling import dated_series

from conftest import AS_OF


# =============================================================
# TEST: state classification
# =============================================================

class TestBtcStates:

    def test_leverage_build_up(self, make_btc_input):
        """OI +11%, funding above its 7D average, price +8% → S1."""
        inp = make_btc_input(
            oi_latest=10e9,
            oi_7d_ago=9e9,
            funding_latest=0.0005,
            funding_7d_history=dated_series([0.0001] * 7, AS_OF),
            btc_price_7d_pct=8.0,
        )
        v = analyze_btc_market(inp)
        assert v.state is BtcState.S1
        assert len(v.state_reasons) == 3
        assert v.state_reasons[0] == "OI 7D +11.1% > +5%"
        assert v.evidence.missing_fields == []

    def test_flush(self, make_btc_input):
        """Price -7%, OI -11%, liquidations 500M vs ~300M average → S2."""
        inp = make_btc_input(
            btc_price_7d_pct=-7.0,
            oi_latest=8e9,
            oi_7d_ago=9e9,
            liq_24h=500e6,
            liq_7d_history=dated_series([300e6] * 7, AS_OF),
        )
        v = analyze_btc_market(inp)
        assert v.state is BtcState.S2
        assert len(v.state_reasons) == 3
        assert v.evidence.liquidations.avg_7d == pytest.approx(300e6)

    def test_low_leverage_repair(self, make_btc_input):
        inp = make_btc_input(
            btc_price_7d_pct=3.0,
            oi_latest=61e9,
            oi_7d_ago=60e9,
            liq_24h=30e6,
        )
        v = analyze_btc_market(inp)
        assert v.state is BtcState.S3
        assert "Funding 0.0100% not extreme" in v.state_reasons

    def test_s1_beats_s2_when_both_qualify(self):
        # S1: OI and funding; S2: price and liquidations
        x = StateInputs(
            price_7d_pct=-8.0,
            oi_7d_pct=6.0,
            funding_latest=0.001,
            funding_7d_avg=0.0001,
            liq_24h=900e6,
            liq_7d_avg=100e6,
        )
        state, reasons = determine_state(x, [])
        assert state is BtcState.S1
        assert len(reasons) == 2

        x.oi_7d_pct = -3.0
        assert determine_state(x, [])[0] is BtcState.S2

    def test_partial_conditions_fall_back_to_neutral(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(btc_price_7d_pct=-2.0))
        assert v.state is BtcState.S4
        assert v.state_reasons[0] == "No state reached its 2-condition threshold"
        assert "[S1] OI 7D +9.1% > +5%" in v.state_reasons
        assert "[S3] Funding 0.0100% not extreme" in v.state_reasons

    def test_nothing_fires_is_neutral(self, make_btc_input):
        inp = make_btc_input(btc_price_7d_pct=-2.0, oi_7d_ago=58e9, funding_latest=-0.001)
        v = analyze_btc_market(inp)
        assert v.state is BtcState.S4
        assert v.state_reasons == ["Insufficient data to determine state"]

    def test_too_many_missing_short_circuits(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(oi_latest=None))
        assert v.state is BtcState.S4
        assert v.evidence.missing_fields == ["oi_7d", "oi_latest"]
        assert v.state_reasons == ["Too many missing fields: oi_7d, oi_latest"]


# =============================================================
# TEST: liquidity tag
# =============================================================

class TestLiquidityTag:

    def test_expanding(self):
        assert liquidity_tag(2.5, 5.0) is LiquidityTag.EXPANDING

    def test_contracting_on_either_negative(self):
        assert liquidity_tag(-1.0, 5.0) is LiquidityTag.CONTRACTING
        assert liquidity_tag(1.0, -0.5) is LiquidityTag.CONTRACTING

    def test_flat_is_unknown(self):
        assert liquidity_tag(0.0, 5.0) is LiquidityTag.UNKNOWN

    def test_missing_stablecoin_change(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(stablecoin_7d_pct=None, stablecoin_30d_pct=5.0))
        assert v.liquidity_tag is LiquidityTag.UNKNOWN
        assert "stablecoin_7d" in v.evidence.missing_fields
        assert v.state is BtcState.S1


# =============================================================
# TEST: windows and derived values
# =============================================================

class TestBtcWindows:

    def test_funding_gap_makes_average_missing(self, make_btc_input):
        history = dated_series([0.0002, 0.0002, None, 0.0002, 0.0002, 0.0002, 0.0002], AS_OF)
        v = analyze_btc_market(make_btc_input(funding_7d_history=history))
        ev = v.evidence.funding
        assert ev.avg_7d is None
        assert ev.avg_7d_reason.startswith("Missing values on:")
        assert v.evidence.missing_fields == ["funding_7d_avg"]
        assert "Funding 0.0100% > 0" in v.state_reasons

    def test_no_funding_history_is_not_missing(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(funding_7d_history=[]))
        assert v.evidence.missing_fields == []
        assert v.evidence.funding.avg_7d_reason is None
        assert "Funding 0.0100% > 0" in v.state_reasons

    def test_liquidation_gap_is_never_partial(self, make_btc_input):
        history = dated_series([40e6, 45e6, 50e6, None, 45e6, 40e6, 50e6], AS_OF)
        v = analyze_btc_market(make_btc_input(liq_7d_history=history))
        liq = v.evidence.liquidations
        assert liq.total_7d is None
        assert liq.avg_7d is None
        assert liq.missing_days == 1
        assert "liq_7d" in v.evidence.missing_fields
        assert "(missing 1 days)" in v.format()

    def test_skipped_funding_day_is_missing(self, make_btc_input):
        """Seven readings, but 2026-01-29 is absent inside the trailing week."""
        days = ["2026-01-25", "2026-01-26", "2026-01-27", "2026-01-28",
                "2026-01-30", "2026-01-31", "2026-02-01"]
        history = {d: 0.0001 for d in days}
        v = analyze_btc_market(make_btc_input(funding_7d_history=history))
        assert v.evidence.funding.avg_7d is None
        assert v.evidence.funding.avg_7d_reason == "Missing values on: 2026-01-29"
        assert v.evidence.missing_fields == ["funding_7d_avg"]

    def test_stale_liquidation_history_is_missing(self, make_btc_input):
        history = dated_series([40e6] * 7, "2026-01-07")
        v = analyze_btc_market(make_btc_input(liq_7d_history=history, previous_state="S1"))
        liq = v.evidence.liquidations
        assert liq.avg_7d is None
        assert liq.missing_days == 7
        assert "liq_7d" in v.evidence.missing_fields
        assert v.confidence is Stability.WATCH

    def test_undated_funding_list_is_missing(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(funding_7d_history=[0.0001] * 7))
        assert v.evidence.funding.avg_7d is None
        assert v.evidence.funding.avg_7d_reason == "Points without a usable date: 7"
        assert "funding_7d_avg" in v.evidence.missing_fields

    def test_short_liquidation_history(self):
        total, avg = liquidations_7d(dated_series([1e6] * 5, AS_OF))
        assert total.value is None and avg is None
        assert total.missing_points == 2

    def test_liquidation_average(self):
        total, avg = liquidations_7d(dated_series([70e6] * 7, AS_OF))
        assert total.value == pytest.approx(490e6)
        assert avg == pytest.approx(70e6)

    def test_oi_change_needs_nonzero_endpoint(self):
        assert oi_7d_change(10e9, 0.0) == (None, None)
        assert oi_7d_change(None, 9e9) == (None, None)
        pct, delta = oi_7d_change(10e9, 8e9)
        assert pct == pytest.approx(25.0)
        assert delta == pytest.approx(2e9)

    def test_zero_oi_endpoint_is_missing(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(oi_7d_ago=0.0))
        assert v.evidence.oi.pct_7d is None
        assert v.evidence.oi.abs_7d is None
        assert "oi_7d" in v.evidence.missing_fields


# =============================================================
# TEST: confidence
# =============================================================

class TestBtcConfidence:

    def test_same_state_complete_data_is_confirmed(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(previous_state="S1"))
        assert v.confidence is Stability.CONFIRMED

    def test_enum_prior(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(previous_state=BtcState.S1))
        assert v.confidence is Stability.CONFIRMED

    def test_state_change_is_watch(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(previous_state="S2"))
        assert v.confidence is Stability.WATCH

    def test_missing_data_is_watch(self, make_btc_input):
        v = analyze_btc_market(make_btc_input(previous_state="S1", stablecoin_latest=None))
        assert v.state is BtcState.S1
        assert v.confidence is Stability.WATCH

    def test_first_cycle_is_watch(self, make_btc_input):
        assert analyze_btc_market(make_btc_input()).confidence is Stability.WATCH


# =============================================================
# TEST: evidence text
# =============================================================

class TestBtcEvidenceText:

    def test_exchange_netflow_always_missing(self, make_btc_input):
        v = analyze_btc_market(make_btc_input())
        assert v.evidence.exchange_netflow.value is None
        assert "Exchange netflow: missing - data source not implemented" in v.format()

    def test_header_lines(self, make_btc_input):
        text = analyze_btc_market(make_btc_input()).format()
        lines = text.splitlines()
        assert lines[0] == "### BTC Market State"
        assert lines[1] == "- State: S1 Leverage build-up (watch)"
        assert lines[2] == "- Liquidity: Expanding"
        assert f"as of {AS_OF}" in lines[3]
        assert "- Missing fields: none" in lines

    def test_absent_values_print_as_missing(self):
        text = analyze_btc_market(BtcStateInput()).format()
        assert "missing" in text
        assert "None" not in text
        assert "nan" not in text

    def test_to_dict_is_plain(self, make_btc_input):
        d = analyze_btc_market(make_btc_input()).to_dict()
        assert d["state"] == "S1"
        assert d["liquidity_tag"] == "Expanding"
        assert d["evidence"]["exchange_netflow"]["value"] is None


# =============================================================
# TEST: properties
# =============================================================

class TestBtcProperties:

    def test_classification_is_total(self, make_btc_input):
        prices = [-8.0, 1.0, None]
        ois = [50e9, 60e9, None]
        fundings = [-0.001, 0.0001, None]
        liqs = [10e6, 500e6, None]
        for price, oi, funding, liq in itertools.product(prices, ois, fundings, liqs):
            inp = make_btc_input(btc_price_7d_pct=price, oi_latest=oi,
                                 funding_latest=funding, liq_24h=liq)
            v = analyze_btc_market(inp)
            assert v.state in BtcState
            assert v.state_reasons
            if len(v.evidence.missing_fields) >= 2:
                assert v.state is BtcState.S4

    def test_deterministic(self, make_btc_input):
        a = analyze_btc_market(make_btc_input(previous_state="S3"))
        b = analyze_btc_market(make_btc_input(previous_state="S3"))
        assert a.to_dict() == b.to_dict()
        assert a.format() == b.format()

    def test_from_dict(self):
        raw = {
            "price": 98000,
            "price_7d_pct": "4.2",
            "funding_latest": 0.0001,
            "oi_latest": 60e9,
            "oi_7d_ago": 55e9,
            "liq_24h": None,
            "funding_history": {"2026-01-31": 0.0001},
        }
        inp = BtcStateInput.from_dict(raw, as_of_date=AS_OF, previous_state="S1")
        assert inp.btc_price_7d_pct == pytest.approx(4.2)
        assert inp.liq_24h is None
        assert inp.as_of_date == AS_OF
        assert inp.liq_7d_history == {}
