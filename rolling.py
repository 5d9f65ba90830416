"""
Rolling Window Aggregator — fail-closed trailing aggregates over dated series.

A window result is present only if every one of its W most-recent points is
present. Never interpolates, forward-fills or averages a partial window.
Daily windows are laid on the calendar ending at the as-of date, so a skipped
or stale day counts as missing. Points without a usable date fail the window.
"""

import logging
from dataclasses import dataclass, field
from collections.abc import Mapping
from datetime import date
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from tristate import clean

logger = logging.getLogger(__name__)

DatedPoints = Union[pd.Series, Mapping, Iterable[Tuple[object, object]]]


@dataclass
class RollingWindowResult:
    value: Optional[float]
    reason: Optional[str] = None   # only set when value is missing
    window: int = 0
    available: int = 0
    missing_dates: List[str] = field(default_factory=list)

    @property
    def is_missing(self) -> bool:
        return self.value is None

    @property
    def missing_points(self) -> int:
        """Absent points inside the window plus any shortfall in length."""
        return len(self.missing_dates) + max(0, self.window - self.available)


# ============================================================
# SERIES HELPERS
# ============================================================

def _split(points: DatedPoints) -> Tuple[list, list, int]:
    """(dates, values, undated). Items that are not (date, value) pairs are undated."""
    if isinstance(points, pd.Series):
        return list(points.index), list(points.values), 0
    if isinstance(points, Mapping):
        return list(points.keys()), list(points.values()), 0

    index, values, undated = [], [], 0
    for p in points:
        if isinstance(p, (tuple, list)) and len(p) == 2:
            index.append(p[0])
            values.append(p[1])
        else:
            undated += 1
    return index, values, undated


def _parse(points: DatedPoints) -> Tuple[pd.Series, int]:
    index, values, undated = _split(points)
    cleaned = [clean(v) for v in values]
    s = pd.Series(
        [np.nan if v is None else v for v in cleaned],
        index=pd.to_datetime(pd.Index(index), errors="coerce"),
        dtype=float,
    )

    bad = s.index.isna()
    if bad.any():
        undated += int(bad.sum())
        s = s[~bad]
    if undated:
        logger.warning(f"Dropping {undated} points without a usable date")

    return s.sort_index(ascending=False), undated


def as_series(points: DatedPoints) -> pd.Series:
    """
    Normalize dated points to a float Series, most-recent-first.
    Missing values become NaN; points without a usable date are dropped.
    """
    return _parse(points)[0]


def undated_count(points: DatedPoints) -> int:
    """Points that cannot be placed on a calendar (no date, or unparseable)."""
    return _parse(points)[1]


def has_points(points: DatedPoints) -> bool:
    """True if any point at all was supplied, dated or not."""
    if isinstance(points, pd.Series):
        return not points.empty
    if points is None:
        return False
    try:
        return len(points) > 0
    except TypeError:
        return True


def daily_calendar(points: DatedPoints, end=None, periods: int = 1) -> pd.Series:
    """
    Reindex onto the `periods` calendar days ending on `end` (default: the
    latest dated point). Absent days become NaN. Returns most-recent-first.
    """
    s = as_series(points)
    s.index = s.index.normalize()
    s = s[~s.index.duplicated(keep="first")]

    end_ts = pd.to_datetime(end, errors="coerce") if end else pd.NaT
    if pd.isna(end_ts):
        if s.empty:
            return s
        end_ts = s.index.max()

    idx = pd.date_range(end=end_ts.normalize(), periods=periods, freq="D")
    return s.reindex(idx).sort_index(ascending=False)


def dated_series(values: Iterable[object], end, trading_days: bool = False) -> pd.Series:
    """
    Attach dates to chronological values (oldest → newest) ending on `end`,
    on a calendar-day or weekday-only calendar. Returns most-recent-first.
    """
    values = list(values)
    freq = "B" if trading_days else "D"
    idx = pd.date_range(end=pd.Timestamp(end), periods=len(values), freq=freq)
    return as_series(zip(idx, values))


def trading_days_only(series: pd.Series) -> pd.Series:
    """Drop Saturday/Sunday rows."""
    return series[series.index.dayofweek < 5]


def format_date(ts) -> str:
    if isinstance(ts, (pd.Timestamp, date)):
        return ts.strftime("%Y-%m-%d")
    return str(ts)


# ============================================================
# WINDOW AGGREGATES
# ============================================================

def _failure(reason: str, window: int, available: int = 0,
             missing_dates: List[str] = None) -> RollingWindowResult:
    return RollingWindowResult(
        value=None,
        reason=reason,
        window=window,
        available=available,
        missing_dates=missing_dates or [],
    )


def _window(points: DatedPoints, window: int, daily: bool = False, end=None):
    """
    Slice the W most-recent points; return (slice, failure-or-None).
    With `daily`, the slice is the W calendar days ending on `end`, so a
    skipped day is a missing value rather than room for an older one.
    """
    if window < 1:
        return None, _failure(f"Invalid window: {window}", window)

    s, undated = _parse(points)
    if daily:
        s = daily_calendar(s, end, window)
    head = s.iloc[:window]
    nan_dates = [format_date(d) for d in head.index[head.isna()]]

    if undated:
        return head, _failure(f"Points without a usable date: {undated}",
                              window, len(head), nan_dates)

    if len(head) < window:
        return head, _failure(f"Insufficient data: only {len(head)} of {window} available",
                              window, len(head), nan_dates)

    if nan_dates:
        return head, _failure(f"Missing values on: {', '.join(nan_dates)}",
                              window, len(head), nan_dates)

    return head, None


def rolling_mean(points: DatedPoints, window: int, daily: bool = False,
                 end=None) -> RollingWindowResult:
    """Mean of the W most-recent points, or missing with a reason."""
    head, failure = _window(points, window, daily, end)
    if failure is not None:
        return failure
    return RollingWindowResult(
        value=float(head.sum()) / window,
        window=window,
        available=window,
    )


def rolling_total(points: DatedPoints, window: int, daily: bool = False,
                  end=None) -> RollingWindowResult:
    """Sum of the W most-recent points, or missing with a reason."""
    head, failure = _window(points, window, daily, end)
    if failure is not None:
        return failure
    return RollingWindowResult(
        value=float(head.sum()),
        window=window,
        available=window,
    )
