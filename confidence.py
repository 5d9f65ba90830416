"""
Confidence / stability state machine.

  (current, prior, missing_count) → watch | confirmed

Shared by the regime and BTC-state classifiers; the prior label is injected
by the caller each cycle, never held here.
"""

import logging
from enum import Enum
from typing import Optional, Type

import settings as cfg

logger = logging.getLogger(__name__)


class Stability(Enum):
    WATCH = "watch"          # first detection, or incomplete data
    CONFIRMED = "confirmed"  # same label as prior cycle, complete data


def stability(current: Enum, prior: Optional[Enum], missing_count: int) -> Stability:
    if missing_count > 0:
        return Stability.WATCH
    if prior is None:
        return Stability.WATCH
    if current == prior:
        return Stability.CONFIRMED
    return Stability.WATCH


def parse_prior(value, alphabet: Type[Enum]) -> Optional[Enum]:
    """
    Lenient prior-label parsing. Accepts an enum member, its value or its
    name; "none"/empty/None mean first cycle. Unknown labels → no prior.
    """
    if value is None:
        return None
    if isinstance(value, alphabet):
        return value

    text = str(value).strip()
    if text.lower() in cfg.NO_PRIOR_TOKENS:
        return None

    for member in alphabet:
        if text == member.value or text.upper() == member.name:
            return member

    logger.warning(f"Unknown prior {alphabet.__name__} label {value!r}, treating as first cycle")
    return None
