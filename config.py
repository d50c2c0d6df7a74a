"""
===============================================================================
  SWING SETUPS: Master Configuration
===============================================================================
  Every tunable parameter lives here.  Nothing is hard-coded elsewhere.
  Values that differ per deployment are loaded from .env; everything else
  has a sensible default that can be overridden at runtime.
===============================================================================
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# ── Load .env ────────────────────────────────────────────────────────────────
_ENV_PATH = Path(__file__).parent / ".env"
load_dotenv(_ENV_PATH)

# ═════════════════════════════════════════════════════════════════════════════
#  MARKET SESSION  (local exchange time, fixed UTC offset)
# ═════════════════════════════════════════════════════════════════════════════
MARKET_UTC_OFFSET_MINUTES: int = int(os.getenv("MARKET_UTC_OFFSET_MINUTES", "330"))  # IST
MARKET_OPEN = {"hour": 9, "minute": 15}
MARKET_CLOSE = {"hour": 15, "minute": 30}
CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "₹")

# ═════════════════════════════════════════════════════════════════════════════
#  CLASSIFICATION GATES  (evaluated in order, first match wins)
# ═════════════════════════════════════════════════════════════════════════════
GATE_RSI_WEAK: float = 35.0              # daily RSI below → weak momentum
GATE_WEEKLY_RSI_OVERBOUGHT: float = 72.0
GATE_DAILY_RSI_OVERBOUGHT: float = 72.0
RSI_RECOVERY_LEVEL: float = 45.0         # quoted in weak-momentum guidance

# Bullish pattern matchers (most specific first)
A_PLUS_52W_RATIO: float = 0.995          # within 0.5% of 52W high
BREAKOUT_52W_RATIO: float = 0.93         # within 7% of 52W high
MOMENTUM_MIN_RSI: float = 55.0
PULLBACK_EMA20_MAX_PCT: float = 3.0      # price at most 3% above EMA20
PULLBACK_EMA20_MIN_PCT: float = -5.0     # price at most 5% below EMA20

# ═════════════════════════════════════════════════════════════════════════════
#  LEVELS
# ═════════════════════════════════════════════════════════════════════════════
ATR_PERIOD: int = 14

# Intraday (news-driven, previous close based)
INTRADAY_ATR_MULTIPLIERS = {
    "HIGH":   1.75,   # results, regulatory action, major deals
    "MEDIUM": 1.25,   # order wins, contracts, routine announcements
    "LOW":    1.0,    # general mentions, sector news
}
INTRADAY_DEFAULT_MULTIPLIER: float = 1.0
INTRADAY_GAP_MAX_ATR: float = 1.2        # gap wider than this → AVOID
INTRADAY_ENTRY_ZONE_ATR: float = 0.3
INTRADAY_STOP_ATR: float = 1.0
INTRADAY_TARGET1_ATR: float = 1.2
INTRADAY_TARGET2_ATR: float = 2.0

# Swing (structural): prices snap to the exchange tick
PRICE_TICK: float = 0.05
SWING_BREAKOUT_ENTRY_MULT: float = 1.005     # last high + 0.5%
SWING_BREAKOUT_ZONE_PCT: float = 1.0
SWING_PULLBACK_ENTRY_MULT: float = 1.001     # last high + 0.1%
SWING_PULLBACK_ZONE_PCT: float = 0.5
SWING_STOP_BUFFER_MULT: float = 0.997        # 0.3% below the structural floor
SWING_BREAKOUT_MAX_STOP_PCT: float = 1.5     # breakout stop never wider than this
SWING_FALLBACK_T2_MULT: float = 1.03
SWING_FALLBACK_T3_MULT: float = 1.05
SWING_T1_MIN_MULT: float = 1.02              # T1 at least 2% above entry …
SWING_T1_MAX_T2_MULT: float = 0.95           # … and at least 5% below T2

# Guardrails: reject, never adjust (except the target cap)
GUARD_MAX_RISK_PCT: float = 5.0
GUARD_MIN_RISK_PCT: float = 0.5
GUARD_MIN_REWARD_PCT: float = 2.0
GUARD_MAX_REWARD_PCT: float = 15.0
GUARD_MIN_RISK_REWARD: float = 1.2

# ═════════════════════════════════════════════════════════════════════════════
#  SCORING  (each rubric's weights must sum to 100)
# ═════════════════════════════════════════════════════════════════════════════
MOMENTUM_RUBRIC_WEIGHTS = {
    "Volume Conviction":        20,
    "Risk:Reward":              20,
    "RSI Position":             15,
    "Weekly Move":              15,
    "Upside to Target":         15,
    "Promoter & Institutional": 10,
    "Price Accessibility":       5,
}
assert sum(MOMENTUM_RUBRIC_WEIGHTS.values()) == 100, \
    f"MOMENTUM_RUBRIC_WEIGHTS must sum to 100, got {sum(MOMENTUM_RUBRIC_WEIGHTS.values())}"

PULLBACK_RUBRIC_WEIGHTS = {
    "EMA20 Proximity":        25,
    "Volume Decline Quality": 20,
    "RSI Cooling":            15,
    "Trend Structure":        15,
    "Risk:Reward":            15,
    "Relative Strength":       5,
    "ATR% Tradability":        5,
}
assert sum(PULLBACK_RUBRIC_WEIGHTS.values()) == 100, \
    f"PULLBACK_RUBRIC_WEIGHTS must sum to 100, got {sum(PULLBACK_RUBRIC_WEIGHTS.values())}"

# Ordered high → low; first threshold the total reaches wins
GRADE_THRESHOLDS = [
    ("A+", 80),
    ("A",  70),
    ("B+", 60),
    ("B",  50),
    ("C",  40),
    ("D",  30),
]
GRADE_FLOOR: str = "F"

STRENGTH_RATIO: float = 0.7    # points >= 70% of max → strength
WATCH_RATIO: float = 0.4       # points <  40% of max → watch

BUY_GRADES = ("A+", "A", "B+")
WAIT_GRADES = ("B",)

# ═════════════════════════════════════════════════════════════════════════════
#  CARD WARNINGS
# ═════════════════════════════════════════════════════════════════════════════
WARN_LOW_VOLUME_RATIO: float = 0.8
WARN_RSI_ELEVATED: float = 65.0
WARN_HIGH_ATR_PCT: float = 4.0
WARN_LOW_RISK_REWARD: float = 1.5
QUICK_REJECT_CONFIDENCE: float = 0.9
CARD_SCHEMA_VERSION: str = "1.5"

# ═════════════════════════════════════════════════════════════════════════════
#  FRESHNESS / CACHE
# ═════════════════════════════════════════════════════════════════════════════
# "next_open"     → quick rejects expire at the next session open
# "session_close" → quick rejects expire at today's (or next) session close
QUICK_REJECT_EXPIRY: str = os.getenv("QUICK_REJECT_EXPIRY", "next_open")
DEFAULT_ANALYSIS_KIND: str = "swing"
CANDLE_LOOKBACK: int = 60

# ═════════════════════════════════════════════════════════════════════════════
#  LOGGING
# ═════════════════════════════════════════════════════════════════════════════
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_NAME: str = os.getenv("LOG_NAME", "setups")    # root logger; also the log file stem
LOG_DIR: Path = Path(__file__).parent / "logs"

# ═════════════════════════════════════════════════════════════════════════════
#  PATHS
# ═════════════════════════════════════════════════════════════════════════════
BASE_DIR: Path = Path(__file__).parent
CARD_STORE_PATH: Path = Path(os.getenv("CARD_STORE_PATH", str(BASE_DIR / "data" / "cards.json")))
