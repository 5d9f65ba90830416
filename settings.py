"""
Market State Engine — All thresholds, rule texts and identifiers.

Every tunable parameter lives here. No magic numbers in classifier code.
"""

import os

# ============================================================
# GENERAL
# ============================================================

MODEL_VERSION = "1.2"

STATE_DIR = os.environ.get("MARKET_STATE_DIR", "state")
STATE_FILE_NAME = "engine_state.json"
OUTPUT_FILE_NAME = "last_output.json"

# Literal token rendered for every absent datum
MISSING_TOKEN = "missing"

# Sentinel accepted for "no prior cycle"
NO_PRIOR_TOKENS = ("", "none", "null")

# ============================================================
# INDICATOR KEYS
# ============================================================

KEY_RISK_ASSET = "QQQ"         # Nasdaq-100 ETF
KEY_SAFE_HAVEN = "GLD"         # SPDR Gold
KEY_VOLATILITY = "VIXCLS"      # VIX Index
KEY_CRYPTO_BETA = "BTC-USD"    # Bitcoin

INDICATOR_NAMES = {
    "BTC-USD": "Bitcoin",
    "QQQ": "Nasdaq-100 ETF",
    "GLD": "SPDR Gold",
    "DGS10": "10Y Treasury",
    "VIXCLS": "VIX Index",
    "DFII10": "10Y Real Yield",
    "BAMLH0A0HYM2": "HY OAS",
    "crypto_funding": "BTC Funding Rate",
    "crypto_oi": "BTC Open Interest",
    "crypto_liquidations": "BTC Liq Pressure (proxy)",
    "stablecoin": "Stablecoin Supply (USDT+USDC)",
}

# ============================================================
# SNAPSHOT DERIVATION
# ============================================================

MA_WINDOW = 20
SPARKLINE_LENGTH = 30
CHANGE_HORIZONS = {"change_1d": 1, "change_7d": 7, "change_30d": 30}

# ============================================================
# REGIME RULES
# ============================================================

RULE_A_RISK_DROP = -2.0        # QQQ 1d ≤ -2.0%
RULE_A_GOLD_BID = 1.0          # GLD 1d ≥ +1.0%
RULE_B_VIX_LEVEL = 20.0        # VIX ≥ 20
RULE_B_RISK_CHANGE = 0.0       # QQQ 1d < 0%
RULE_D_RISK_RALLY = 1.0        # QQQ 1d ≥ +1.0%
RULE_E_GOLD_CALM = 0.5         # GLD 1d ≤ +0.5%
RULE_F_CRYPTO_CHANGE = 0.0     # BTC 1d ≥ 0%

RULE_TEXT = {
    "A": "QQQ ≤ -2.0% AND GLD ≥ +1.0%",
    "B": "VIX ≥ 20 AND QQQ < 0%",
    "C": "QQQ < 20D MA AND GLD > 20D MA",
    "D": "QQQ ≥ +1.0% AND QQQ > 20D MA",
    "E": "GLD ≤ +0.5% OR GLD ≤ 20D MA",
    "F": "BTC ≥ 0% OR BTC > 20D MA",
}

RULE_MISSING_SUFFIX = " (missing data)"

# confidence = base + span × usable / total, capped
REGIME_CONFIDENCE_BASE = 60.0
REGIME_CONFIDENCE_SPAN = 40.0
REGIME_CONFIDENCE_CAP = 100.0

# ============================================================
# BTC LEVERAGE STATE
# ============================================================

BTC_WINDOW_DAYS = 7
BTC_RULE_SET_THRESHOLD = 2     # conditions needed per rule set
BTC_MISSING_SHORT_CIRCUIT = 2  # ≥ N missing fields → S4

S1_OI_7D_MIN = 5.0             # OI 7d% > +5%
S1_FUNDING_MIN = 0.0
S1_PRICE_7D_MIN = 0.0

S2_PRICE_7D_MAX = -5.0         # price 7d% < -5%
S2_OI_7D_MAX = 0.0
S2_LIQ_MULTIPLIER = 1.5        # liq 24h > 1.5 × 7d avg

S3_PRICE_7D_MIN = 0.0
S3_OI_7D_MAX = 2.0             # OI 7d% ≤ +2%
S3_FUNDING_ABS_MAX = 0.0005    # |funding| < 0.05%

BTC_STATE_LABELS = {
    "S1": "Leverage build-up",
    "S2": "Deleveraging / flush",
    "S3": "Low-leverage repair",
    "S4": "Neutral / mixed",
}

EXCHANGE_NETFLOW_REASON = "missing - data source not implemented"

# Missing-field identifiers (evaluation order)
MISSING_OI_7D = "oi_7d"
MISSING_FUNDING_7D_AVG = "funding_7d_avg"
MISSING_LIQ_7D = "liq_7d"
MISSING_BTC_PRICE = "btc_price"
MISSING_BTC_PRICE_7D = "btc_price_7d"
MISSING_FUNDING_LATEST = "funding_latest"
MISSING_OI_LATEST = "oi_latest"
MISSING_LIQ_24H = "liq_24h"
MISSING_STABLECOIN_LATEST = "stablecoin_latest"
MISSING_STABLECOIN_7D = "stablecoin_7d"
MISSING_STABLECOIN_30D = "stablecoin_30d"

# ============================================================
# ETF FLOW
# ============================================================

ETF_FLOW_UNIT = "US$m"
ETF_SHORT_WINDOW = 5           # trading days
ETF_LONG_WINDOW = 20           # trading days
ETF_DRAG_SINGLE_DAY = -200.0   # today < -200 US$m → Drag

ETF_LARGE_FLOW = 500.0
ETF_GBTC_NOISE_RATIO = 0.5
ETF_GBTC_NOISE_MIN = 100.0
ETF_MOMENTUM_STRONG = 1.5      # 5D > 20D × 1.5
ETF_MOMENTUM_WEAK = 0.5        # 5D < 20D × 0.5
ETF_IBIT_DOMINANCE = 0.7
