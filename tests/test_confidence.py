"""
Tests for the watch/confirmed stability machine and prior-label parsing.
"""

import logging

from btc_state import BtcState
from confidence import Stability, parse_prior, stability
from regime import Regime


class TestStability:

    def test_no_prior_is_watch(self):
        assert stability(Regime.BASE, None, 0) is Stability.WATCH

    def test_same_label_complete_data_is_confirmed(self):
        assert stability(BtcState.S2, BtcState.S2, 0) is Stability.CONFIRMED

    def test_changed_label_is_watch(self):
        assert stability(BtcState.S2, BtcState.S1, 0) is Stability.WATCH

    def test_missing_data_overrides_agreement(self):
        assert stability(BtcState.S2, BtcState.S2, 1) is Stability.WATCH

    def test_confirmed_only_in_one_cell(self):
        for current in BtcState:
            for prior in list(BtcState) + [None]:
                for missing in (0, 1, 3):
                    expected = current == prior and missing == 0
                    result = stability(current, prior, missing)
                    assert (result is Stability.CONFIRMED) == expected


class TestParsePrior:

    def test_member_passes_through(self):
        assert parse_prior(Regime.RISK_ON, Regime) is Regime.RISK_ON

    def test_value_and_name(self):
        assert parse_prior("risk_off", Regime) is Regime.RISK_OFF
        assert parse_prior("RISK_OFF", Regime) is Regime.RISK_OFF
        assert parse_prior(" s3 ", BtcState) is BtcState.S3

    def test_first_cycle_tokens(self):
        for token in (None, "", "none", "None", "null"):
            assert parse_prior(token, BtcState) is None

    def test_unknown_label_is_no_prior(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert parse_prior("S9", BtcState) is None
        assert "Unknown prior BtcState label" in caplog.text
