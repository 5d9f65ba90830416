"""
Market State Engine — one report cycle.

Pipeline:
  raw input → snapshots → regime rules → BTC leverage state
            → ETF flow context → evidence chain → output

The classifiers are pure; the prior-cycle labels are read from `state` and
never mutated during `process`. Persisting the next state is the caller's job
(see load_state / save_state).
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import settings as cfg
from btc_state import BtcStateInput, BtcStateVerdict, analyze_btc_market
from etf_flow import EtfFlowContext, etf_flow_context, flow_alerts, parse_flow_value, total_ex_gbtc
from evidence import format_btc_evidence, to_jsonable
from regime import RegimeVerdict, classify_regime
from snapshots import IndicatorSnapshot, data_quality, missing_indicators, snapshot_from_dict
from tristate import clean

logger = logging.getLogger(__name__)

STATE_DIR = Path(cfg.STATE_DIR)
STATE_FILE = STATE_DIR / cfg.STATE_FILE_NAME

LOG_LENGTH = 200


# ============================================================
# INPUT PARSING
# ============================================================

def parse_snapshots(raw_indicators: Optional[dict]) -> List[IndicatorSnapshot]:
    if not raw_indicators:
        return []
    return [snapshot_from_dict(key, entry or {}) for key, entry in raw_indicators.items()]


def flow_cell(value) -> Optional[float]:
    """Published flow cells may arrive as text, e.g. "(528.3)" or "-"."""
    return parse_flow_value(value) if isinstance(value, str) else clean(value)


def parse_flows(raw_flows: Optional[dict]) -> Dict[str, Optional[float]]:
    if not raw_flows:
        return {}
    return {d: flow_cell(v) for d, v in raw_flows.items()}


def etf_section(raw_data: dict, as_of) -> dict:
    ctx: EtfFlowContext = etf_flow_context(
        parse_flows(raw_data.get("etf_flows")),
        as_of=as_of,
        fetch_time_utc=raw_data.get("etf_fetch_time_utc"),
    )

    latest = raw_data.get("etf_latest") or {}
    total = flow_cell(latest.get("total", ctx.today))
    ibit = flow_cell(latest.get("ibit"))
    gbtc = flow_cell(latest.get("gbtc"))
    ex_gbtc, ex_gbtc_reason = total_ex_gbtc(total, gbtc)

    return {
        "context": ctx,
        "total_ex_gbtc": ex_gbtc,
        "total_ex_gbtc_reason": ex_gbtc_reason,
        "alert": flow_alerts(total, ibit, gbtc, ctx.rolling_5d, ctx.rolling_20d),
    }


# ============================================================
# STATE MANAGEMENT
# ============================================================

def load_state() -> dict:
    """Prior-cycle labels from disk, merged over the defaults."""
    state = default_state()
    if not STATE_FILE.exists():
        return state
    try:
        with open(STATE_FILE) as f:
            stored = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"State load failed, starting fresh: {e}")
        return state

    if not isinstance(stored, dict):
        logger.warning(f"State file holds {type(stored).__name__}, starting fresh")
        return state
    state.update({k: v for k, v in stored.items() if k in state})
    return state


def save_state(state: dict):
    """Persist the prior-cycle labels. State holds only plain JSON values."""
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    tmp = STATE_FILE.with_suffix(".tmp")
    with open(tmp, "w") as f:
        json.dump(state, f, indent=2)
    tmp.replace(STATE_FILE)


def save_output(output: dict) -> Path:
    """Write the full cycle output next to the state file."""
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    path = STATE_DIR / cfg.OUTPUT_FILE_NAME
    with open(path, "w") as f:
        json.dump(output, f, indent=2, default=str, ensure_ascii=False)
    return path


def default_state() -> dict:
    return {
        "previous_regime": None,
        "previous_btc_state": None,
        "regime_log": [],
        "btc_state_log": [],
        "last_run": None,
        "model_version": cfg.MODEL_VERSION,
    }


# ============================================================
# MAIN ENGINE
# ============================================================

class MarketStateEngine:
    """Market State Engine — regime, BTC leverage state, ETF flow."""

    VERSION = cfg.MODEL_VERSION

    def __init__(self, state: dict = None):
        self.state = state if state is not None else default_state()

    def process(self, raw_data: dict) -> dict:
        """
        Run one cycle over an input document. Returns the full output schema.
        Does not touch disk and does not modify self.state.
        """
        as_of = raw_data.get("as_of") or ""

        # ── 1. Snapshots ──────────────────────────────────────
        snapshots = parse_snapshots(raw_data.get("indicators"))
        quality = data_quality(snapshots)
        if quality is not None and quality < 100:
            logger.warning(f"Data quality {quality}/100, missing: "
                           f"{', '.join(missing_indicators(snapshots))}")

        # ── 2. Regime ─────────────────────────────────────────
        regime: RegimeVerdict = classify_regime(snapshots, self.state.get("previous_regime"))

        # ── 3. ETF flow ───────────────────────────────────────
        etf = etf_section(raw_data, as_of or None)

        # ── 4. BTC leverage state ─────────────────────────────
        btc_input = BtcStateInput.from_dict(
            raw_data.get("btc") or {},
            as_of_date=as_of,
            previous_state=self.state.get("previous_btc_state"),
            etf_flow=etf["context"],
        )
        btc: BtcStateVerdict = analyze_btc_market(btc_input)

        # ── 5. Output ─────────────────────────────────────────
        return {
            "as_of": as_of,
            "regime": regime.to_dict(),
            "btc": btc.to_dict(),
            "etf_flow": {
                **to_jsonable(etf["context"]),
                "total_ex_gbtc": etf["total_ex_gbtc"],
                "total_ex_gbtc_reason": etf["total_ex_gbtc_reason"],
                "alert": etf["alert"],
            },
            "snapshots": [s.to_dict() for s in snapshots],
            "data_quality": {
                "score": quality,
                "missing_indicators": missing_indicators(snapshots),
            },
            "evidence_text": format_btc_evidence(btc),
            "metadata": {
                "model_version": self.VERSION,
                "previous_regime": self.state.get("previous_regime"),
                "previous_btc_state": self.state.get("previous_btc_state"),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }

    def next_state(self, output: dict) -> dict:
        """State to persist after `output`; the prior labels for the next cycle."""
        regime = output["regime"]["regime"]
        btc_state = output["btc"]["state"]

        state = dict(self.state)
        state["previous_regime"] = regime
        state["previous_btc_state"] = btc_state
        state["regime_log"] = (list(state.get("regime_log", [])) + [regime])[-LOG_LENGTH:]
        state["btc_state_log"] = (list(state.get("btc_state_log", [])) + [btc_state])[-LOG_LENGTH:]
        state["last_run"] = output["metadata"]["timestamp"]
        state["model_version"] = self.VERSION
        return state
