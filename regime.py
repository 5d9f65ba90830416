"""
Regime Classifier — six fixed rules → risk_on | risk_off | base.

Rules A-C vote risk_off, D-F vote risk_on. Each rule is a three-valued
predicate: a rule whose inputs are missing is recorded as untriggered with
"(missing data)", never evaluated as false.

  regime = risk_off  iff any risk_off rule fires and no risk_on rule fires
           risk_on   symmetric
           base      otherwise (including both sides firing)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import settings as cfg
from confidence import Stability, parse_prior, stability
from evidence import MissingFields, RegimeEvidence, to_jsonable
from snapshots import IndicatorSnapshot, index_snapshots
from tristate import all_of, any_of, ge, le, lt, negate

logger = logging.getLogger(__name__)

QQQ = cfg.KEY_RISK_ASSET
GLD = cfg.KEY_SAFE_HAVEN
VIX = cfg.KEY_VOLATILITY
BTC = cfg.KEY_CRYPTO_BETA


class Regime(Enum):
    RISK_ON = "risk_on"
    RISK_OFF = "risk_off"
    BASE = "base"


# ============================================================
# RULE TABLE
# ============================================================

Lookup = Callable[[str, str], object]


@dataclass(frozen=True)
class RegimeRule:
    rule_id: str
    side: Regime
    inputs: Tuple[Tuple[str, str], ...]    # (indicator, field) read by predicate
    predicate: Callable[[Lookup], Optional[bool]]

    @property
    def description(self) -> str:
        return cfg.RULE_TEXT[self.rule_id]


def _rule_a(v: Lookup) -> Optional[bool]:
    return all_of([
        le(v(QQQ, "change_1d"), cfg.RULE_A_RISK_DROP),
        ge(v(GLD, "change_1d"), cfg.RULE_A_GOLD_BID),
    ])


def _rule_b(v: Lookup) -> Optional[bool]:
    return all_of([
        ge(v(VIX, "latest_value"), cfg.RULE_B_VIX_LEVEL),
        lt(v(QQQ, "change_1d"), cfg.RULE_B_RISK_CHANGE),
    ])


def _rule_c(v: Lookup) -> Optional[bool]:
    return all_of([negate(v(QQQ, "above_ma20")), v(GLD, "above_ma20")])


def _rule_d(v: Lookup) -> Optional[bool]:
    return all_of([
        ge(v(QQQ, "change_1d"), cfg.RULE_D_RISK_RALLY),
        v(QQQ, "above_ma20"),
    ])


def _rule_e(v: Lookup) -> Optional[bool]:
    return any_of([
        le(v(GLD, "change_1d"), cfg.RULE_E_GOLD_CALM),
        negate(v(GLD, "above_ma20")),
    ])


def _rule_f(v: Lookup) -> Optional[bool]:
    return any_of([
        ge(v(BTC, "change_1d"), cfg.RULE_F_CRYPTO_CHANGE),
        v(BTC, "above_ma20"),
    ])


REGIME_RULES: Tuple[RegimeRule, ...] = (
    RegimeRule("A", Regime.RISK_OFF, ((QQQ, "change_1d"), (GLD, "change_1d")), _rule_a),
    RegimeRule("B", Regime.RISK_OFF, ((VIX, "latest_value"), (QQQ, "change_1d")), _rule_b),
    RegimeRule("C", Regime.RISK_OFF, ((QQQ, "above_ma20"), (GLD, "above_ma20")), _rule_c),
    RegimeRule("D", Regime.RISK_ON, ((QQQ, "change_1d"), (QQQ, "above_ma20")), _rule_d),
    RegimeRule("E", Regime.RISK_ON, ((GLD, "change_1d"), (GLD, "above_ma20")), _rule_e),
    RegimeRule("F", Regime.RISK_ON, ((BTC, "change_1d"), (BTC, "above_ma20")), _rule_f),
)


# ============================================================
# OUTPUT
# ============================================================

@dataclass
class RuleOutcome:
    rule_id: str
    side: Regime
    description: str
    triggered: bool
    missing: bool

    @property
    def label(self) -> str:
        text = f"{self.rule_id}: {self.description}"
        return text + cfg.RULE_MISSING_SUFFIX if self.missing else text


@dataclass
class RegimeVerdict:
    regime: Regime
    status: Stability
    confidence_percent: float
    triggered_rules: List[str]
    untriggered_rules: List[str]
    outcomes: List[RuleOutcome] = field(default_factory=list)
    evidence: RegimeEvidence = field(default_factory=RegimeEvidence)

    def to_dict(self) -> dict:
        return to_jsonable(self)


# ============================================================
# EVALUATION
# ============================================================

def evaluate_rules(snapshots: Dict[str, IndicatorSnapshot]) -> Tuple[List[RuleOutcome], RegimeEvidence]:
    """Evaluate every rule in fixed order; collect the literal values read."""
    ev = RegimeEvidence()
    missing = MissingFields()

    def lookup(indicator: str, name: str):
        snap = snapshots.get(indicator)
        value = getattr(snap, name) if snap is not None else None
        ev.indicators.setdefault(indicator, {})[name] = value
        missing.mark(f"{indicator}.{name}", value is None)
        return value

    outcomes = []
    for rule in REGIME_RULES:
        result = rule.predicate(lookup)
        outcomes.append(RuleOutcome(
            rule_id=rule.rule_id,
            side=rule.side,
            description=rule.description,
            triggered=result is True,
            missing=result is None,
        ))

    ev.missing_fields = missing.as_list()
    return outcomes, ev


def combine(outcomes: List[RuleOutcome]) -> Regime:
    risk_off = any(o.triggered for o in outcomes if o.side is Regime.RISK_OFF)
    risk_on = any(o.triggered for o in outcomes if o.side is Regime.RISK_ON)

    if risk_off and not risk_on:
        return Regime.RISK_OFF
    if risk_on and not risk_off:
        return Regime.RISK_ON
    return Regime.BASE


def regime_confidence(outcomes: List[RuleOutcome]) -> float:
    """Data completeness, not conviction: 60 + 40 × usable/total, capped."""
    total = len(REGIME_RULES)
    usable = sum(1 for o in outcomes if not o.missing)
    conf = cfg.REGIME_CONFIDENCE_BASE + cfg.REGIME_CONFIDENCE_SPAN * usable / total
    return min(cfg.REGIME_CONFIDENCE_CAP, conf)


def classify_regime(snapshots, previous_regime=None) -> RegimeVerdict:
    """
    Classify the macro regime from a snapshot vector (list or dict keyed by
    indicator) and the prior cycle's regime (enum, string or None).
    """
    snaps = index_snapshots(snapshots)
    prior = parse_prior(previous_regime, Regime)

    outcomes, ev = evaluate_rules(snaps)
    regime = combine(outcomes)
    status = stability(regime, prior, missing_count=0)
    conf = regime_confidence(outcomes)

    triggered = [o.label for o in outcomes if o.triggered]
    untriggered = [o.label for o in outcomes if not o.triggered]

    logger.info(f"Regime: {regime.value} ({status.value}) conf={conf:.1f}% "
                f"triggered={[o.rule_id for o in outcomes if o.triggered]}")

    return RegimeVerdict(
        regime=regime,
        status=status,
        confidence_percent=conf,
        triggered_rules=triggered,
        untriggered_rules=untriggered,
        outcomes=outcomes,
        evidence=ev,
    )
