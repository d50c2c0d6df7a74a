"""
Classification gates: snapshot → Setup | Rejection.

Two ordered tables drive the decision.  ``GATES`` are rejection rules and
the first one that fires wins; if none fires, ``PATTERNS`` are tried most
specific first.  Every rule is a plain function of the snapshot so each can
be tested on its own.  A missing field disables only the rule that needs it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import config as cfg
from utils.logger import get_logger
from utils.numbers import is_num, round2
from .models import IndicatorSnapshot, Rejection, Setup, ClassificationResult

log = get_logger("classifier")

_CUR = cfg.CURRENCY_SYMBOL


@dataclass(frozen=True)
class Gate:
    name: str
    check: Callable[[IndicatorSnapshot], Optional[Rejection]]


@dataclass(frozen=True)
class Pattern:
    name: str
    match: Callable[[IndicatorSnapshot], Optional[Setup]]


# ═════════════════════════════════════════════════════════════════════════════
#  REJECTION GATES
# ═════════════════════════════════════════════════════════════════════════════

def gate_price(s: IndicatorSnapshot) -> Optional[Rejection]:
    if not is_num(s.price) or s.price <= 0:
        return Rejection(
            reason="insufficient_data",
            message="Unable to fetch current price data for this stock.",
        )
    return None


def gate_below_200sma(s: IndicatorSnapshot) -> Optional[Rejection]:
    if is_num(s.sma200) and s.sma200 > 0 and s.price < s.sma200:
        distance_below = round2((s.sma200 - s.price) / s.sma200 * 100)
        return Rejection(
            reason="below_200sma",
            message=(
                f"Stock is trading {distance_below}% below its 200-day MA "
                f"({_CUR}{round2(s.sma200)}). Not a swing buy setup."
            ),
            details={"sma200": round2(s.sma200), "distance_below": distance_below},
        )
    return None


def gate_weak_momentum(s: IndicatorSnapshot) -> Optional[Rejection]:
    if is_num(s.rsi) and s.rsi < cfg.GATE_RSI_WEAK:
        return Rejection(
            reason="weak_momentum",
            message=(
                f"Daily RSI at {round2(s.rsi)} indicates weak momentum. Wait for "
                f"recovery above {cfg.RSI_RECOVERY_LEVEL:g} before considering entry."
            ),
            details={"rsi": round2(s.rsi)},
        )
    return None


def gate_trend_broken(s: IndicatorSnapshot) -> Optional[Rejection]:
    if is_num(s.ema20) and is_num(s.ema50) and s.price < s.ema50 and s.price < s.ema20:
        return Rejection(
            reason="trend_broken",
            message=(
                f"Stock is below both 20-day ({_CUR}{round2(s.ema20)}) and 50-day "
                f"({_CUR}{round2(s.ema50)}) MAs. Short-term trend is down."
            ),
            details={"ema20": round2(s.ema20), "ema50": round2(s.ema50)},
        )
    return None


def gate_weekly_overbought(s: IndicatorSnapshot) -> Optional[Rejection]:
    if is_num(s.weekly_rsi) and s.weekly_rsi > cfg.GATE_WEEKLY_RSI_OVERBOUGHT:
        return Rejection(
            reason="overbought",
            message=(
                f"Weekly RSI at {round2(s.weekly_rsi)} indicates stock is overextended. "
                f"Wait for pullback before considering entry."
            ),
            details={"weekly_rsi": round2(s.weekly_rsi)},
        )
    return None


def gate_daily_overbought(s: IndicatorSnapshot) -> Optional[Rejection]:
    if is_num(s.rsi) and s.rsi > cfg.GATE_DAILY_RSI_OVERBOUGHT:
        return Rejection(
            reason="overbought_daily",
            message=(
                f"Daily RSI at {round2(s.rsi)} indicates stock is overextended. "
                f"Wait for pullback to EMA20 before considering entry."
            ),
            details={"rsi": round2(s.rsi)},
        )
    return None


GATES: tuple[Gate, ...] = (
    Gate("price", gate_price),
    Gate("below_200sma", gate_below_200sma),
    Gate("weak_momentum", gate_weak_momentum),
    Gate("trend_broken", gate_trend_broken),
    Gate("weekly_overbought", gate_weekly_overbought),
    Gate("daily_overbought", gate_daily_overbought),
)


# ═════════════════════════════════════════════════════════════════════════════
#  BULLISH PATTERNS  (most specific first, fallback last)
# ═════════════════════════════════════════════════════════════════════════════

def match_a_plus_momentum(s: IndicatorSnapshot) -> Optional[Setup]:
    if is_num(s.high_52w) and s.high_52w > 0 and s.price >= s.high_52w * cfg.A_PLUS_52W_RATIO:
        return Setup("a_plus_momentum", "Stock is at 52-week high - strong breakout setup.")
    return None


def match_breakout(s: IndicatorSnapshot) -> Optional[Setup]:
    if is_num(s.high_52w) and s.high_52w > 0 and s.price >= s.high_52w * cfg.BREAKOUT_52W_RATIO:
        return Setup("breakout", "Stock is near 52-week high - breakout setup.")
    return None


def match_momentum(s: IndicatorSnapshot) -> Optional[Setup]:
    if not all(is_num(v) for v in (s.ema20, s.ema50, s.sma200, s.rsi)):
        return None
    if (s.price > s.ema20 and s.price > s.ema50 and s.price > s.sma200
            and s.rsi >= cfg.MOMENTUM_MIN_RSI):
        return Setup("momentum", "Stock above all key MAs with healthy RSI - momentum setup.")
    return None


def match_pullback(s: IndicatorSnapshot) -> Optional[Setup]:
    if not (is_num(s.ema20) and is_num(s.ema50)) or s.ema20 <= 0:
        return None
    if s.price <= s.ema50:
        return None
    dist_pct = (s.price - s.ema20) / s.ema20 * 100
    if cfg.PULLBACK_EMA20_MIN_PCT <= dist_pct <= cfg.PULLBACK_EMA20_MAX_PCT:
        return Setup("pullback", "Stock at EMA20 support - pullback buy setup.")
    return None


def match_consolidation_breakout(s: IndicatorSnapshot) -> Optional[Setup]:
    if is_num(s.sma200) and s.price > s.sma200:
        return Setup(
            "consolidation_breakout",
            "Stock above 200-day MA - potential consolidation breakout.",
        )
    return None


PATTERNS: tuple[Pattern, ...] = (
    Pattern("a_plus_momentum", match_a_plus_momentum),
    Pattern("breakout", match_breakout),
    Pattern("momentum", match_momentum),
    Pattern("pullback", match_pullback),
    Pattern("consolidation_breakout", match_consolidation_breakout),
)

_UNCLEAR = Rejection(
    reason="unclear",
    message="No clear setup pattern detected. Monitor for better entry conditions.",
)


def classify(snapshot: IndicatorSnapshot) -> ClassificationResult:
    """Run the gate chain then the pattern chain; first hit wins."""
    for gate in GATES:
        rejection = gate.check(snapshot)
        if rejection is not None:
            log.debug(f"gate '{gate.name}' rejected: {rejection.reason}")
            return rejection

    for pattern in PATTERNS:
        setup = pattern.match(snapshot)
        if setup is not None:
            log.debug(f"pattern '{pattern.name}' matched")
            return setup

    # only reachable when sma200 is unknown and no other pattern applies
    return _UNCLEAR
