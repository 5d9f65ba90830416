"""
Three-valued helpers — true / false / missing.

None is the only missing marker. Every comparison or arithmetic step on a
missing operand yields missing, never 0 or False.
"""

import logging
import math
from typing import Iterable, Optional

import numpy as np

logger = logging.getLogger(__name__)


def clean(value) -> Optional[float]:
    """Coerce a raw numeric input to float, or None when absent/unparseable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        x = float(value)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable numeric input treated as missing: {value!r}")
        return None
    if math.isnan(x) or math.isinf(x):
        return None
    return x


def clean_flag(value) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    logger.debug(f"Non-boolean flag treated as missing: {value!r}")
    return None


# ============================================================
# COMPARISONS
# ============================================================

def gt(a: Optional[float], b: Optional[float]) -> Optional[bool]:
    if a is None or b is None:
        return None
    return a > b


def ge(a: Optional[float], b: Optional[float]) -> Optional[bool]:
    if a is None or b is None:
        return None
    return a >= b


def lt(a: Optional[float], b: Optional[float]) -> Optional[bool]:
    if a is None or b is None:
        return None
    return a < b


def le(a: Optional[float], b: Optional[float]) -> Optional[bool]:
    if a is None or b is None:
        return None
    return a <= b


def negate(a: Optional[bool]) -> Optional[bool]:
    return None if a is None else not a


# ============================================================
# CONNECTIVES
# ============================================================

def all_of(values: Iterable[Optional[bool]]) -> Optional[bool]:
    """
    Strict AND: every operand is required, so any missing operand makes the
    conjunction missing even when another operand is already False.
    """
    values = list(values)
    if any(v is None for v in values):
        return None
    return all(values)


def any_of(values: Iterable[Optional[bool]]) -> Optional[bool]:
    """
    Lenient OR: True if any operand is True, False if at least one operand
    is present and none is True, missing only when every operand is missing.
    """
    result: Optional[bool] = None
    for v in values:
        if v is True:
            return True
        if v is False:
            result = False
    return result


# ============================================================
# ARITHMETIC
# ============================================================

def pct_change(current: Optional[float], past: Optional[float]) -> Optional[float]:
    """Percent change; missing if either endpoint is missing or past is zero."""
    if current is None or past is None or past == 0:
        return None
    return (current / past - 1.0) * 100.0


def difference(current: Optional[float], past: Optional[float]) -> Optional[float]:
    if current is None or past is None:
        return None
    return current - past
