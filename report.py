"""
Report — plain-text rendering of one cycle's output.
Every absent datum prints as "missing".
"""


import settings as cfg
from evidence import fmt_flag, fmt_plain, fmt_signed


REGIME_LABELS = {"risk_on": "RISK-ON", "risk_off": "RISK-OFF", "base": "BASE"}


def format_report(output: dict) -> str:
    regime = output.get("regime", {})
    etf = output.get("etf_flow", {})
    quality = output.get("data_quality", {})
    meta = output.get("metadata", {})
    snapshots = output.get("snapshots", [])

    lines = []

    # ══════════════════════════════════════════════════════
    # HEADER
    # ══════════════════════════════════════════════════════
    lines.append(f"# Market State Monitor | {output.get('as_of') or cfg.MISSING_TOKEN}")
    score = quality.get("score")
    lines.append(f"Data quality: {score if score is not None else cfg.MISSING_TOKEN}/100")
    lines.append("")

    # ══════════════════════════════════════════════════════
    # REGIME
    # ══════════════════════════════════════════════════════
    label = REGIME_LABELS.get(regime.get("regime"), "?")
    lines.append(f"## Regime: {label} ({regime.get('status', '?')})")
    lines.append(f"Confidence: {regime.get('confidence_percent', 0):.1f}%")
    lines.append("Triggered:")
    triggered = regime.get("triggered_rules", [])
    if triggered:
        lines.extend(f"  + {r}" for r in triggered)
    else:
        lines.append("  none")
    lines.append("Not triggered:")
    lines.extend(f"  - {r}" for r in regime.get("untriggered_rules", []))
    lines.append("")

    # ══════════════════════════════════════════════════════
    # SNAPSHOT
    # ══════════════════════════════════════════════════════
    lines.append("## Snapshot")
    for s in snapshots:
        lines.append(
            f"  {s['display_name']}: {fmt_plain(s['latest_value'])}"
            f" | 1D {fmt_signed(s['change_1d'], 2)}"
            f" | 7D {fmt_signed(s['change_7d'], 2)}"
            f" | 30D {fmt_signed(s['change_30d'], 2)}"
            f" | 20D MA {fmt_flag(s['above_ma20'])}"
        )
    missing = quality.get("missing_indicators") or []
    if missing:
        lines.append(f"  Missing: {', '.join(missing)}")
    lines.append("")

    # ══════════════════════════════════════════════════════
    # BTC + ETF
    # ══════════════════════════════════════════════════════
    lines.append(output.get("evidence_text", ""))
    lines.append("")

    tag = etf.get("tag", {})
    lines.append(f"## ETF Flow ({cfg.ETF_FLOW_UNIT}): {tag.get('tag', 'Neutral')}")
    lines.append(f"  {tag.get('reason', '')}")
    for key, name in (("rolling_5d", "5D"), ("rolling_20d", "20D")):
        reason = etf.get(f"{key}_reason")
        if reason:
            lines.append(f"  {name} avg {cfg.MISSING_TOKEN}: {reason}")
    if etf.get("total_ex_gbtc_reason"):
        lines.append(f"  Total ex-GBTC {cfg.MISSING_TOKEN}: {etf['total_ex_gbtc_reason']}")
    else:
        lines.append(f"  Total ex-GBTC: {fmt_signed(etf.get('total_ex_gbtc'), 1, '')}")
    lines.append(f"  Notes: {etf.get('alert', 'No significant signals')}")
    lines.append("")

    lines.append(f"model v{meta.get('model_version', '?')} · {meta.get('timestamp', '')}")
    return "\n".join(lines)
