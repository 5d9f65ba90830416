"""
BTC Leverage-State Classifier — S1..S4 + liquidity tag.

Describes derivatives-leverage dynamics only; emits no trading advice.

  S1  leverage build-up      OI↑ + funding positive/rising + price↑
  S2  deleveraging / flush   price 7D < -5% + OI↓ + liquidations spiking
  S3  low-leverage repair    price↑ + OI flat + liquidations fading + funding calm
  S4  neutral / mixed        nothing reaches 2 conditions, or too much missing

Rule sets are evaluated in fixed priority S1 → S2 → S3; the first set with
2 fired conditions wins. Classification is total: S4 is the fallback.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

import settings as cfg
from confidence import Stability, parse_prior, stability
from etf_flow import EtfFlowContext
from evidence import (
    BtcEvidence, FundingEvidence, LiquidationEvidence, MissingFields,
    OiEvidence, PriceEvidence, StablecoinEvidence, format_btc_evidence,
    fmt_rate, fmt_scaled, to_jsonable,
)
from rolling import DatedPoints, RollingWindowResult, has_points, rolling_mean, rolling_total
from tristate import clean, difference, gt, le, lt, pct_change

logger = logging.getLogger(__name__)


class BtcState(Enum):
    S1 = "S1"
    S2 = "S2"
    S3 = "S3"
    S4 = "S4"


class LiquidityTag(Enum):
    EXPANDING = "Expanding"
    CONTRACTING = "Contracting"
    UNKNOWN = "Unknown"


# ============================================================
# INPUT / OUTPUT
# ============================================================

@dataclass
class BtcStateInput:
    btc_price: Optional[float] = None
    btc_price_7d_pct: Optional[float] = None
    btc_price_30d_pct: Optional[float] = None
    funding_latest: Optional[float] = None
    oi_latest: Optional[float] = None
    liq_24h: Optional[float] = None
    stablecoin_latest: Optional[float] = None
    stablecoin_7d_pct: Optional[float] = None
    stablecoin_30d_pct: Optional[float] = None

    oi_7d_ago: Optional[float] = None
    funding_7d_history: DatedPoints = field(default_factory=list)
    liq_7d_history: DatedPoints = field(default_factory=list)

    previous_state: Optional[object] = None   # BtcState, "S1".."S4" or None
    as_of_date: str = ""
    etf_flow: Optional[EtfFlowContext] = None

    @classmethod
    def from_dict(cls, raw: dict, as_of_date: str = "",
                  previous_state=None, etf_flow: EtfFlowContext = None) -> "BtcStateInput":
        """Input-document section → BtcStateInput. Unknown keys are ignored."""
        return cls(
            btc_price=clean(raw.get("price")),
            btc_price_7d_pct=clean(raw.get("price_7d_pct")),
            btc_price_30d_pct=clean(raw.get("price_30d_pct")),
            funding_latest=clean(raw.get("funding_latest")),
            oi_latest=clean(raw.get("oi_latest")),
            liq_24h=clean(raw.get("liq_24h")),
            stablecoin_latest=clean(raw.get("stablecoin_latest")),
            stablecoin_7d_pct=clean(raw.get("stablecoin_7d_pct")),
            stablecoin_30d_pct=clean(raw.get("stablecoin_30d_pct")),
            oi_7d_ago=clean(raw.get("oi_7d_ago")),
            funding_7d_history=raw.get("funding_history") or {},
            liq_7d_history=raw.get("liq_history") or {},
            previous_state=previous_state,
            as_of_date=raw.get("as_of", as_of_date) or as_of_date,
            etf_flow=etf_flow,
        )


@dataclass
class BtcStateVerdict:
    state: BtcState
    liquidity_tag: LiquidityTag
    confidence: Stability
    evidence: BtcEvidence
    state_reasons: List[str]

    def to_dict(self) -> dict:
        return to_jsonable(self)

    def format(self) -> str:
        return format_btc_evidence(self)


@dataclass
class StateInputs:
    """The six values the rule sets read."""
    price_7d_pct: Optional[float]
    oi_7d_pct: Optional[float]
    funding_latest: Optional[float]
    funding_7d_avg: Optional[float]
    liq_24h: Optional[float]
    liq_7d_avg: Optional[float]


# ============================================================
# DERIVED AGGREGATES
# ============================================================

def oi_7d_change(oi_latest: Optional[float], oi_7d_ago: Optional[float]) -> Tuple[Optional[float], Optional[float]]:
    """(pct, abs); both missing unless both endpoints exist and the old one ≠ 0."""
    pct = pct_change(oi_latest, oi_7d_ago)
    if pct is None:
        return None, None
    return pct, difference(oi_latest, oi_7d_ago)


def funding_7d_avg(history: DatedPoints, as_of=None) -> RollingWindowResult:
    """Mean over the 7 calendar days ending on `as_of` (default: latest reading)."""
    return rolling_mean(history, cfg.BTC_WINDOW_DAYS, daily=True, end=as_of)


def liquidations_7d(history: DatedPoints, as_of=None) -> Tuple[RollingWindowResult, Optional[float]]:
    """(total result, avg). Missing - not partial - unless all 7 days up to `as_of` are present."""
    total = rolling_total(history, cfg.BTC_WINDOW_DAYS, daily=True, end=as_of)
    avg = None if total.value is None else total.value / cfg.BTC_WINDOW_DAYS
    return total, avg


def liquidity_tag(stable_7d_pct: Optional[float], stable_30d_pct: Optional[float]) -> LiquidityTag:
    if stable_7d_pct is None or stable_30d_pct is None:
        return LiquidityTag.UNKNOWN
    if stable_7d_pct > 0 and stable_30d_pct > 0:
        return LiquidityTag.EXPANDING
    if stable_7d_pct < 0 or stable_30d_pct < 0:
        return LiquidityTag.CONTRACTING
    return LiquidityTag.UNKNOWN


# ============================================================
# RULE SETS
# ============================================================

def _m(x: Optional[float]) -> str:
    return fmt_scaled(x, 1e6, "M", 0)


def s1_conditions(x: StateInputs) -> List[str]:
    """Leverage build-up."""
    fired = []
    if gt(x.oi_7d_pct, cfg.S1_OI_7D_MIN):
        fired.append(f"OI 7D {x.oi_7d_pct:+.1f}% > +{cfg.S1_OI_7D_MIN:.0f}%")
    if gt(x.funding_latest, cfg.S1_FUNDING_MIN):
        if x.funding_7d_avg is None:
            fired.append(f"Funding {fmt_rate(x.funding_latest)} > 0")
        elif x.funding_latest > x.funding_7d_avg:
            fired.append(f"Funding {fmt_rate(x.funding_latest)} > 0 and above "
                         f"7D avg {fmt_rate(x.funding_7d_avg)}")
    if gt(x.price_7d_pct, cfg.S1_PRICE_7D_MIN):
        fired.append(f"Price 7D {x.price_7d_pct:+.1f}% > 0")
    return fired


def s2_conditions(x: StateInputs) -> List[str]:
    """Deleveraging / flush."""
    fired = []
    if lt(x.price_7d_pct, cfg.S2_PRICE_7D_MAX):
        fired.append(f"Price 7D {x.price_7d_pct:.1f}% < {cfg.S2_PRICE_7D_MAX:.0f}%")
    if lt(x.oi_7d_pct, cfg.S2_OI_7D_MAX):
        fired.append(f"OI 7D {x.oi_7d_pct:.1f}% < 0")
    if (x.liq_24h is not None and x.liq_7d_avg is not None and x.liq_7d_avg > 0
            and x.liq_24h > x.liq_7d_avg * cfg.S2_LIQ_MULTIPLIER):
        fired.append(f"Liq 24h {_m(x.liq_24h)} > 7D avg {_m(x.liq_7d_avg)} "
                     f"× {cfg.S2_LIQ_MULTIPLIER}")
    return fired


def s3_conditions(x: StateInputs) -> List[str]:
    """Low-leverage repair."""
    fired = []
    if gt(x.price_7d_pct, cfg.S3_PRICE_7D_MIN):
        fired.append(f"Price 7D {x.price_7d_pct:+.1f}% > 0")
    if le(x.oi_7d_pct, cfg.S3_OI_7D_MAX):
        fired.append(f"OI 7D {x.oi_7d_pct:+.1f}% ≤ +{cfg.S3_OI_7D_MAX:.0f}%")
    if lt(x.liq_24h, x.liq_7d_avg):
        fired.append(f"Liq 24h {_m(x.liq_24h)} < 7D avg {_m(x.liq_7d_avg)}")
    if x.funding_latest is not None and abs(x.funding_latest) < cfg.S3_FUNDING_ABS_MAX:
        fired.append(f"Funding {fmt_rate(x.funding_latest)} not extreme")
    return fired


# Fixed priority: first set reaching its threshold wins
STATE_RULE_SETS: Tuple[Tuple[BtcState, int, Callable[[StateInputs], List[str]]], ...] = (
    (BtcState.S1, cfg.BTC_RULE_SET_THRESHOLD, s1_conditions),
    (BtcState.S2, cfg.BTC_RULE_SET_THRESHOLD, s2_conditions),
    (BtcState.S3, cfg.BTC_RULE_SET_THRESHOLD, s3_conditions),
)


def determine_state(x: StateInputs, missing_fields: List[str]) -> Tuple[BtcState, List[str]]:
    if len(missing_fields) >= cfg.BTC_MISSING_SHORT_CIRCUIT:
        return BtcState.S4, [f"Too many missing fields: {', '.join(missing_fields)}"]

    fired = [(state, threshold, conditions(x)) for state, threshold, conditions in STATE_RULE_SETS]

    for state, threshold, conds in fired:
        if len(conds) >= threshold:
            return state, conds

    partial = [f"[{state.value}] {c}" for state, _, conds in fired for c in conds]
    if partial:
        return BtcState.S4, ["No state reached its 2-condition threshold"] + partial
    return BtcState.S4, ["Insufficient data to determine state"]


# ============================================================
# ANALYSIS
# ============================================================

def analyze_btc_market(inp: BtcStateInput) -> BtcStateVerdict:
    """Classify one cycle. Pure: reads `inp`, returns a new verdict."""
    price = clean(inp.btc_price)
    price_7d = clean(inp.btc_price_7d_pct)
    price_30d = clean(inp.btc_price_30d_pct)
    funding = clean(inp.funding_latest)
    oi = clean(inp.oi_latest)
    liq_24h = clean(inp.liq_24h)
    stable = clean(inp.stablecoin_latest)
    stable_7d = clean(inp.stablecoin_7d_pct)
    stable_30d = clean(inp.stablecoin_30d_pct)

    oi_pct, oi_abs = oi_7d_change(oi, clean(inp.oi_7d_ago))
    funding_avg = funding_7d_avg(inp.funding_7d_history, inp.as_of_date)
    funding_supplied = has_points(inp.funding_7d_history)
    liq_total, liq_avg = liquidations_7d(inp.liq_7d_history, inp.as_of_date)

    missing = MissingFields()
    missing.mark(cfg.MISSING_OI_7D, oi_pct is None)
    missing.mark(cfg.MISSING_FUNDING_7D_AVG, funding_avg.is_missing and funding_supplied)
    missing.mark(cfg.MISSING_LIQ_7D, liq_total.is_missing)
    missing.mark(cfg.MISSING_BTC_PRICE, price is None)
    missing.mark(cfg.MISSING_BTC_PRICE_7D, price_7d is None)
    missing.mark(cfg.MISSING_FUNDING_LATEST, funding is None)
    missing.mark(cfg.MISSING_OI_LATEST, oi is None)
    missing.mark(cfg.MISSING_LIQ_24H, liq_24h is None)
    missing.mark(cfg.MISSING_STABLECOIN_LATEST, stable is None)
    missing.mark(cfg.MISSING_STABLECOIN_7D, stable_7d is None)
    missing.mark(cfg.MISSING_STABLECOIN_30D, stable_30d is None)
    missing_fields = missing.as_list()

    tag = liquidity_tag(stable_7d, stable_30d)

    state, reasons = determine_state(
        StateInputs(
            price_7d_pct=price_7d,
            oi_7d_pct=oi_pct,
            funding_latest=funding,
            funding_7d_avg=funding_avg.value,
            liq_24h=liq_24h,
            liq_7d_avg=liq_avg,
        ),
        missing_fields,
    )

    prior = parse_prior(inp.previous_state, BtcState)
    conf = stability(state, prior, len(missing_fields))

    as_of = inp.as_of_date
    evidence = BtcEvidence(
        price=PriceEvidence(latest=price, pct_7d=price_7d, pct_30d=price_30d, as_of=as_of),
        oi=OiEvidence(latest=oi, pct_7d=oi_pct, abs_7d=oi_abs, as_of=as_of),
        funding=FundingEvidence(
            latest=funding,
            avg_7d=funding_avg.value,
            as_of=as_of,
            avg_7d_reason=funding_avg.reason if funding_supplied else None,
        ),
        liquidations=LiquidationEvidence(
            h24=liq_24h,
            total_7d=liq_total.value,
            avg_7d=liq_avg,
            as_of=as_of,
            missing_days=liq_total.missing_points or None,
            window_reason=liq_total.reason,
        ),
        stablecoin=StablecoinEvidence(latest=stable, pct_7d=stable_7d, pct_30d=stable_30d, as_of=as_of),
        etf_flow=inp.etf_flow,
        missing_fields=missing_fields,
    )

    if missing_fields:
        logger.warning(f"BTC state inputs missing: {', '.join(missing_fields)}")
    logger.info(f"BTC state: {state.value} ({conf.value}) liquidity={tag.value}")

    return BtcStateVerdict(
        state=state,
        liquidity_tag=tag,
        confidence=conf,
        evidence=evidence,
        state_reasons=reasons,
    )
