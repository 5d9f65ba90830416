"""
Indicator snapshots — one immutable record per indicator per cycle.

Snapshots either arrive precomputed or are derived here from a chronological
price series. A field that cannot be computed is None, never 0.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

import settings as cfg
from tristate import clean, clean_flag, gt, pct_change

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndicatorSnapshot:
    indicator: str
    display_name: str
    latest_value: Optional[float] = None
    change_1d: Optional[float] = None
    change_7d: Optional[float] = None
    change_30d: Optional[float] = None
    ma20: Optional[float] = None
    above_ma20: Optional[bool] = None
    recent_series: Tuple[float, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["recent_series"] = list(self.recent_series)
        return d


# ============================================================
# DERIVATION
# ============================================================

def calculate_change(prices: np.ndarray, days: int) -> Optional[float]:
    """% change between the last price and the one `days` earlier."""
    if len(prices) < days + 1:
        return None
    return pct_change(clean(prices[-1]), clean(prices[-1 - days]))


def calculate_ma(prices: np.ndarray, window: int = None) -> Optional[float]:
    window = window or cfg.MA_WINDOW
    if len(prices) < window:
        return None
    return float(np.mean(prices[-window:]))


def build_snapshot(indicator: str, prices: Sequence[Optional[float]],
                   display_name: str = None,
                   latest: Optional[float] = None) -> IndicatorSnapshot:
    """
    Derive a snapshot from chronological prices (oldest → newest).
    Missing points are dropped before derivation, as upstream feeds do.
    `latest` overrides the last close when the feed reports it separately.
    """
    vals = [clean(p) for p in prices]
    arr = np.array([v for v in vals if v is not None], dtype=float)
    if len(arr) < len(vals):
        logger.debug(f"{indicator}: dropped {len(vals) - len(arr)} missing prices")

    latest_value = clean(latest) if latest is not None else (
        float(arr[-1]) if len(arr) > 0 else None
    )
    ma20 = calculate_ma(arr)

    return IndicatorSnapshot(
        indicator=indicator,
        display_name=display_name or cfg.INDICATOR_NAMES.get(indicator, indicator),
        latest_value=latest_value,
        change_1d=calculate_change(arr, cfg.CHANGE_HORIZONS["change_1d"]),
        change_7d=calculate_change(arr, cfg.CHANGE_HORIZONS["change_7d"]),
        change_30d=calculate_change(arr, cfg.CHANGE_HORIZONS["change_30d"]),
        ma20=ma20,
        above_ma20=gt(latest_value, ma20),
        recent_series=tuple(float(x) for x in arr[-cfg.SPARKLINE_LENGTH:]),
    )


def snapshot_from_dict(indicator: str, raw: dict) -> IndicatorSnapshot:
    """Build a snapshot from an input document entry (prices or precomputed)."""
    display_name = raw.get("display_name")
    if raw.get("prices") is not None:
        return build_snapshot(indicator, raw["prices"], display_name,
                              latest=raw.get("latest_value"))

    series = [clean(x) for x in raw.get("recent_series", [])]
    return IndicatorSnapshot(
        indicator=indicator,
        display_name=display_name or cfg.INDICATOR_NAMES.get(indicator, indicator),
        latest_value=clean(raw.get("latest_value")),
        change_1d=clean(raw.get("change_1d")),
        change_7d=clean(raw.get("change_7d")),
        change_30d=clean(raw.get("change_30d")),
        ma20=clean(raw.get("ma20")),
        above_ma20=clean_flag(raw.get("above_ma20")),
        recent_series=tuple(x for x in series if x is not None),
    )


def index_snapshots(snapshots) -> Dict[str, IndicatorSnapshot]:
    """Accept a list or a dict of snapshots; key them by indicator."""
    if isinstance(snapshots, dict):
        return dict(snapshots)
    return {s.indicator: s for s in snapshots}


# ============================================================
# DATA QUALITY
# ============================================================

def data_quality(snapshots: List[IndicatorSnapshot]) -> Optional[int]:
    """Share of indicators with a latest value, 0-100. Missing if no indicators."""
    total = len(snapshots)
    if total == 0:
        return None
    valid = sum(1 for s in snapshots if s.latest_value is not None)
    return int(round(valid / total * 100))


def missing_indicators(snapshots: List[IndicatorSnapshot]) -> List[str]:
    return [s.indicator for s in snapshots if s.latest_value is None]
