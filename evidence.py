"""
Evidence Chain — literal trace of every value a verdict was built from.

Records mirror the classifiers' decision inputs. Absent values stay None in
the structure and render as the literal token "missing" in text; nothing is
ever substituted with zero.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import settings as cfg


# ============================================================
# MISSING-FIELD COLLECTOR
# ============================================================

class MissingFields:
    """Ordered, de-duplicated list of missing-field identifiers."""

    def __init__(self):
        self._names: List[str] = []

    def mark(self, name: str, is_missing: bool = True):
        if is_missing and name not in self._names:
            self._names.append(name)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: str) -> bool:
        return name in self._names

    def as_list(self) -> List[str]:
        return list(self._names)


# ============================================================
# BTC EVIDENCE RECORDS
# ============================================================

@dataclass
class PriceEvidence:
    latest: Optional[float]
    pct_7d: Optional[float]
    pct_30d: Optional[float]
    as_of: str


@dataclass
class OiEvidence:
    latest: Optional[float]
    pct_7d: Optional[float]
    abs_7d: Optional[float]
    as_of: str


@dataclass
class FundingEvidence:
    latest: Optional[float]
    avg_7d: Optional[float]
    as_of: str
    avg_7d_reason: Optional[str] = None


@dataclass
class LiquidationEvidence:
    h24: Optional[float]
    total_7d: Optional[float]
    avg_7d: Optional[float]
    as_of: str
    missing_days: Optional[int] = None   # only set when > 0
    window_reason: Optional[str] = None


@dataclass
class StablecoinEvidence:
    latest: Optional[float]
    pct_7d: Optional[float]
    pct_30d: Optional[float]
    as_of: str


@dataclass
class ExchangeNetflowEvidence:
    value: None = None
    reason: str = cfg.EXCHANGE_NETFLOW_REASON


@dataclass
class BtcEvidence:
    price: PriceEvidence
    oi: OiEvidence
    funding: FundingEvidence
    liquidations: LiquidationEvidence
    stablecoin: StablecoinEvidence
    exchange_netflow: ExchangeNetflowEvidence = field(default_factory=ExchangeNetflowEvidence)
    etf_flow: Optional[Any] = None       # etf_flow.EtfFlowContext
    missing_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_jsonable(self)


@dataclass
class RegimeEvidence:
    indicators: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    missing_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_jsonable(self)


# ============================================================
# SERIALIZATION
# ============================================================

def to_jsonable(obj):
    """Recursively convert dataclasses/enums/tuples to plain JSON types."""
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj


# ============================================================
# TEXT HELPERS
# ============================================================

def fmt_signed(x: Optional[float], digits: int = 1, suffix: str = "%") -> str:
    if x is None:
        return cfg.MISSING_TOKEN
    return f"{x:+.{digits}f}{suffix}"


def fmt_scaled(x: Optional[float], scale: float, unit: str, digits: int,
               signed: bool = False) -> str:
    """Dollar amount in units of `scale`, e.g. fmt_scaled(1.2e9, 1e9, "B", 2)."""
    if x is None:
        return cfg.MISSING_TOKEN
    v = x / scale
    if signed:
        sign = "+" if v >= 0 else "-"
        return f"{sign}${abs(v):,.{digits}f}{unit}"
    return f"${v:,.{digits}f}{unit}"


def fmt_rate(x: Optional[float]) -> str:
    """Funding rate as a percentage with 4 decimals."""
    if x is None:
        return cfg.MISSING_TOKEN
    return f"{x * 100:.4f}%"


def fmt_plain(x: Optional[float], digits: int = 2) -> str:
    if x is None:
        return cfg.MISSING_TOKEN
    return f"{x:,.{digits}f}"


def fmt_flag(x: Optional[bool]) -> str:
    if x is None:
        return cfg.MISSING_TOKEN
    return "above" if x else "at/below"


# ============================================================
# BTC EVIDENCE TEXT
# ============================================================

def format_btc_evidence(verdict) -> str:
    """
    Deterministic text block for a BtcStateVerdict.
    Every absent datum is printed as "missing".
    """
    ev: BtcEvidence = verdict.evidence
    state = verdict.state.value
    label = cfg.BTC_STATE_LABELS.get(state, "")

    lines = [
        "### BTC Market State",
        f"- State: {state} {label} ({verdict.confidence.value})",
        f"- Liquidity: {verdict.liquidity_tag.value}",
        f"- Evidence (as of {ev.price.as_of or cfg.MISSING_TOKEN}):",
    ]

    lines.append(
        f"  - Price: {fmt_scaled(ev.price.latest, 1, '', 0)}"
        f" | 7D: {fmt_signed(ev.price.pct_7d)}"
        f" | 30D: {fmt_signed(ev.price.pct_30d)}"
    )

    abs_str = fmt_scaled(ev.oi.abs_7d, 1e6, "M", 0, signed=True)
    lines.append(
        f"  - OI: {fmt_scaled(ev.oi.latest, 1e9, 'B', 2)}"
        f" | 7D: {fmt_signed(ev.oi.pct_7d)} ({abs_str})"
    )

    lines.append(
        f"  - Funding: {fmt_rate(ev.funding.latest)}"
        f" | 7D avg: {fmt_rate(ev.funding.avg_7d)}"
    )

    liq = ev.liquidations
    liq_line = (
        f"  - Liq 24h: {fmt_scaled(liq.h24, 1e6, 'M', 1)}"
        f" | 7D total: {fmt_scaled(liq.total_7d, 1e6, 'M', 0)}"
        f" | 7D avg: {fmt_scaled(liq.avg_7d, 1e6, 'M', 0)}"
    )
    if liq.missing_days:
        liq_line += f" (missing {liq.missing_days} days)"
    lines.append(liq_line)

    lines.append(
        f"  - Stablecoin: {fmt_scaled(ev.stablecoin.latest, 1e9, 'B', 1)}"
        f" | 7D: {fmt_signed(ev.stablecoin.pct_7d, 2)}"
        f" | 30D: {fmt_signed(ev.stablecoin.pct_30d, 2)}"
    )

    lines.append(f"  - Exchange netflow: {ev.exchange_netflow.reason}")

    etf = ev.etf_flow
    if etf is not None:
        lines.append(
            f"  - ETF flow ({etf.as_of_date or cfg.MISSING_TOKEN}, {cfg.ETF_FLOW_UNIT}):"
            f" today {fmt_signed(etf.today, 1, '')}"
            f" | 5D avg {fmt_signed(etf.rolling_5d, 1, '')}"
            f" | 20D avg {fmt_signed(etf.rolling_20d, 1, '')}"
            f" | {etf.tag.tag.value}: {etf.tag.reason}"
        )

    missing = ", ".join(ev.missing_fields) if ev.missing_fields else "none"
    lines.append(f"- Missing fields: {missing}")

    if verdict.state_reasons:
        lines.append(f"- State basis: {'; '.join(verdict.state_reasons)}")

    return "\n".join(lines)
