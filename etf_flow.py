"""
ETF Flow Tagger — daily spot-ETF net flow momentum (US$m).

Descriptive context only: the tag says whether flows are a tailwind, a drag
or neither. It carries no directional instruction.

Ordered rule, first match wins:
  1. any input missing                  → Neutral ("Insufficient data")
  2. 5D < 0 and 5D < 20D                → Drag (weak momentum)
  3. today < -200                       → Drag (single-day outflow)
  4. 5D > 0 and 20D ≥ 0                 → Supportive
  5. otherwise                          → Neutral
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import pandas as pd

import settings as cfg
from rolling import (
    DatedPoints, RollingWindowResult, as_series, format_date,
    rolling_mean, trading_days_only, undated_count,
)

logger = logging.getLogger(__name__)


class EtfTag(Enum):
    SUPPORTIVE = "Supportive"
    DRAG = "Drag"
    NEUTRAL = "Neutral"


@dataclass
class EtfFlowTag:
    tag: EtfTag
    reason: str


@dataclass
class EtfFlowContext:
    today: Optional[float]
    rolling_5d: Optional[float]
    rolling_20d: Optional[float]
    as_of_date: Optional[str]
    tag: EtfFlowTag
    rolling_5d_reason: Optional[str] = None
    rolling_20d_reason: Optional[str] = None
    fetch_time_utc: Optional[str] = None


# ============================================================
# TAGGER
# ============================================================

def tag_etf_flow(today: Optional[float], rolling_5d: Optional[float],
                 rolling_20d: Optional[float]) -> EtfFlowTag:
    if today is None or rolling_5d is None or rolling_20d is None:
        return EtfFlowTag(EtfTag.NEUTRAL, "Insufficient data")

    if rolling_5d < 0 and rolling_5d < rolling_20d:
        return EtfFlowTag(
            EtfTag.DRAG,
            f"5D avg {rolling_5d:.1f}m below 20D avg {rolling_20d:.1f}m: weak momentum",
        )

    if today < cfg.ETF_DRAG_SINGLE_DAY:
        return EtfFlowTag(
            EtfTag.DRAG,
            f"Single-day outflow {today:.1f}m below {cfg.ETF_DRAG_SINGLE_DAY:.0f}m",
        )

    if rolling_5d > 0 and rolling_20d >= 0:
        return EtfFlowTag(
            EtfTag.SUPPORTIVE,
            f"5D avg {rolling_5d:.1f}m, 20D avg {rolling_20d:.1f}m: flows supportive",
        )

    return EtfFlowTag(
        EtfTag.NEUTRAL,
        f"Mixed flows: 5D avg {rolling_5d:.1f}m, 20D avg {rolling_20d:.1f}m",
    )


# ============================================================
# TRADING-DAY CONTEXT
# ============================================================

def _trading_slice(flows: DatedPoints, as_of=None) -> pd.Series:
    s = trading_days_only(as_series(flows))
    if as_of is not None:
        s = s[s.index <= pd.Timestamp(as_of)]
    return s


def etf_flow_context(flows: DatedPoints, as_of=None,
                     fetch_time_utc: Optional[str] = None) -> EtfFlowContext:
    """
    Build today / 5D / 20D context from a daily net-flow series.
    Weekend rows are excluded before any window is taken; rows after
    `as_of` are ignored.
    """
    s = _trading_slice(flows, as_of)

    if s.empty:
        logger.warning("ETF flow series empty after trading-day filter")
        today, as_of_date = None, None
    else:
        raw = s.iloc[0]
        today = None if pd.isna(raw) else float(raw)
        as_of_date = format_date(s.index[0])

    r5: RollingWindowResult = rolling_mean(s, cfg.ETF_SHORT_WINDOW)
    r20: RollingWindowResult = rolling_mean(s, cfg.ETF_LONG_WINDOW)

    # An unplaceable point could belong inside either window
    undated = undated_count(flows)
    if undated:
        reason = f"Points without a usable date: {undated}"
        r5 = RollingWindowResult(None, reason, r5.window, r5.available, r5.missing_dates)
        r20 = RollingWindowResult(None, reason, r20.window, r20.available, r20.missing_dates)

    tag = tag_etf_flow(today, r5.value, r20.value)

    logger.info(f"ETF flow {as_of_date}: today={today} 5D={r5.value} "
                f"20D={r20.value} → {tag.tag.value}")

    return EtfFlowContext(
        today=today,
        rolling_5d=r5.value,
        rolling_20d=r20.value,
        as_of_date=as_of_date,
        tag=tag,
        rolling_5d_reason=r5.reason,
        rolling_20d_reason=r20.reason,
        fetch_time_utc=fetch_time_utc,
    )


# ============================================================
# PUBLISHED-TABLE VALUES
# ============================================================

_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")


def parse_flow_value(text) -> Optional[float]:
    """
    Published flow cell → float.
      "(528.3)" → -528.3   (parentheses mean outflow)
      "-", ""   → None     (not reported)
      "1,024.5" → 1024.5
    """
    if text is None:
        return None
    cleaned = str(text).strip().replace(",", "")
    if cleaned in ("", "-"):
        return None
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]
    if not _NUMBER.match(cleaned):
        logger.debug(f"Unparseable flow cell treated as missing: {text!r}")
        return None
    return float(cleaned)


def total_ex_gbtc(total: Optional[float], gbtc: Optional[float]) -> Tuple[Optional[float], Optional[str]]:
    if gbtc is None:
        return None, "GBTC value is missing"
    if total is None:
        return None, "Total value is missing"
    return total - gbtc, None


def flow_alerts(total: Optional[float], ibit: Optional[float], gbtc: Optional[float],
                rolling_5d: Optional[float], rolling_20d: Optional[float]) -> str:
    """Descriptive notes on one day's flows. Never a directional instruction."""
    alerts: List[str] = []

    if total is not None:
        if total > cfg.ETF_LARGE_FLOW:
            alerts.append(f"Large inflow: {total:.1f}m")
        elif total < -cfg.ETF_LARGE_FLOW:
            alerts.append(f"Large outflow: {total:.1f}m")

    if gbtc is not None and total is not None and total != 0:
        ratio = abs(gbtc) / abs(total)
        if ratio > cfg.ETF_GBTC_NOISE_RATIO and abs(gbtc) > cfg.ETF_GBTC_NOISE_MIN:
            alerts.append(f"GBTC noise: {gbtc:.1f}m ({ratio * 100:.0f}% of total)")

    if rolling_5d is not None and rolling_20d is not None:
        if rolling_5d > rolling_20d * cfg.ETF_MOMENTUM_STRONG:
            alerts.append("Short-term momentum: 5D > 20D by 50%+")
        elif rolling_5d < rolling_20d * cfg.ETF_MOMENTUM_WEAK:
            alerts.append("Weakening momentum: 5D < 20D by 50%+")

    if ibit is not None and total is not None and total != 0:
        ibit_ratio = ibit / total
        if abs(ibit_ratio) > cfg.ETF_IBIT_DOMINANCE:
            alerts.append(f"IBIT dominated: {ibit_ratio * 100:.0f}% of total")

    return " | ".join(alerts) if alerts else "No significant signals"
