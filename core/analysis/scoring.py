"""
Setup scoring: two mutually exclusive 100-point rubrics and one grade table.

Momentum-family scans (a_plus_momentum, breakout, momentum,
consolidation_breakout) are scored on conviction and upside; pullbacks on an
inverted rubric where quiet volume and a cooled RSI near EMA20 are features.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Sequence

import config as cfg
from utils.logger import get_logger
from utils.numbers import clamp, is_num, round2
from .models import (
    BreakdownEntry,
    IndicatorSnapshot,
    Rubric,
    ScoreFactor,
    ScoreResult,
    Setup,
    SwingLevels,
)

log = get_logger("scoring")

RUBRIC_WEIGHTS: dict[str, dict[str, int]] = {
    "momentum": cfg.MOMENTUM_RUBRIC_WEIGHTS,
    "pullback": cfg.PULLBACK_RUBRIC_WEIGHTS,
}


# ═════════════════════════════════════════════════════════════════════════════
#  GRADE & TAGS
# ═════════════════════════════════════════════════════════════════════════════

def grade_for(total: float) -> str:
    for grade, threshold in cfg.GRADE_THRESHOLDS:
        if total >= threshold:
            return grade
    return cfg.GRADE_FLOOR


def tag_for(points: float, max_points: float) -> str:
    if max_points <= 0:
        return "neutral"
    if points >= cfg.STRENGTH_RATIO * max_points:
        return "strength"
    if points < cfg.WATCH_RATIO * max_points:
        return "watch"
    return "neutral"


def score(factors: Sequence[ScoreFactor], rubric: Rubric) -> ScoreResult:
    """
    Sum a rubric's factors into a total, grade and tagged breakdown.

    Points are clamped into [0, max] so the breakdown always sums to the
    total and the total stays within 0-100.
    """
    weights = RUBRIC_WEIGHTS.get(rubric)
    if weights is None:
        raise ValueError(f"Unknown rubric: {rubric}")
    names = [f.name for f in factors]
    if sorted(names) != sorted(weights):
        raise ValueError(f"Factors {names} do not match the {rubric} rubric")

    breakdown = []
    for f in factors:
        max_pts = weights[f.name]
        pts = clamp(f.points, 0, max_pts)
        breakdown.append(BreakdownEntry(
            factor=f.name,
            points=pts,
            max=max_pts,
            reason=f.reason,
            raw_value=f.raw_value,
            tag=tag_for(pts, max_pts),
        ))

    total = sum(b.points for b in breakdown)
    result = ScoreResult(total=total, grade=grade_for(total), rubric=rubric,
                         breakdown=tuple(breakdown))
    log.debug(f"{rubric} score {total} → {result.grade}")
    return result


# ═════════════════════════════════════════════════════════════════════════════
#  SHARED HELPERS
# ═════════════════════════════════════════════════════════════════════════════

def _ladder(value: float, steps: Sequence[tuple[float, int]], below: int) -> int:
    """Points of the first step whose floor *value* reaches (steps high → low)."""
    for floor, pts in steps:
        if value >= floor:
            return pts
    return below


def _missing(name: str, what: str) -> ScoreFactor:
    return ScoreFactor(name, None, 0, 0, f"No {what} data")


def _sized(rubric: Rubric, factors: list[ScoreFactor]) -> list[ScoreFactor]:
    """Stamp each factor with its rubric maximum."""
    weights = RUBRIC_WEIGHTS[rubric]
    return [replace(f, max=weights[f.name]) for f in factors]


def _rr_factor(levels: Optional[SwingLevels], steps, below: int) -> ScoreFactor:
    if levels is None:
        return _missing("Risk:Reward", "risk:reward")
    rr = levels.risk_reward
    pts = _ladder(rr, steps, below)
    return ScoreFactor("Risk:Reward", rr, pts, 0, f"Risk:Reward 1:{round2(rr)}")


# ═════════════════════════════════════════════════════════════════════════════
#  MOMENTUM RUBRIC
# ═════════════════════════════════════════════════════════════════════════════

def _volume_conviction(s: IndicatorSnapshot) -> ScoreFactor:
    v = s.volume_vs_avg
    if not is_num(v):
        return _missing("Volume Conviction", "volume")
    if v >= 1.0:
        pts = _ladder(v, [(3.0, 20), (2.5, 18), (2.0, 16), (1.5, 12), (1.2, 8)], 5)
    else:
        pts = 2
    return ScoreFactor("Volume Conviction", v, pts, 0, f"Volume {round2(v)}x 20-day average")


def _rsi_position(s: IndicatorSnapshot) -> ScoreFactor:
    rsi = s.rsi
    if not is_num(rsi):
        return _missing("RSI Position", "RSI")
    if 55 <= rsi <= 62:
        pts, note = 15, "sweet spot"
    elif 52 <= rsi < 55 or 62 < rsi <= 65:
        pts, note = 12, "healthy"
    elif 65 < rsi <= 68:
        pts, note = 10, "strong but warming"
    elif 68 < rsi <= 72:
        pts, note = 5, "extended"
    elif rsi > 72:
        pts, note = 0, "overbought"
    else:
        pts, note = 6, "momentum still building"
    return ScoreFactor("RSI Position", rsi, pts, 0, f"RSI {round2(rsi)} ({note})")


def _weekly_move(s: IndicatorSnapshot) -> ScoreFactor:
    move = s.weekly_change_pct
    if not is_num(move):
        return _missing("Weekly Move", "weekly move")
    if 3 <= move <= 7:
        pts, note = 15, "ideal"
    elif 2 <= move < 3:
        pts, note = 12, "building"
    elif 7 < move <= 10:
        pts, note = 10, "strong"
    elif 1 <= move < 2:
        pts, note = 8, "modest"
    elif move > 10:
        pts, note = 5, "overextended"
    else:
        pts, note = 3, "flat or down"
    return ScoreFactor("Weekly Move", move, pts, 0, f"Weekly move {round2(move)}% ({note})")


def _upside_to_target(s: IndicatorSnapshot, levels: Optional[SwingLevels]) -> ScoreFactor:
    if levels is None or not is_num(s.price) or s.price <= 0:
        return _missing("Upside to Target", "target")
    upside = (levels.target_2 - s.price) / s.price * 100
    pts = _ladder(upside, [(15, 15), (12, 13), (10, 11), (8, 9), (6, 7), (4, 4)], 2)
    return ScoreFactor("Upside to Target", round2(upside), pts, 0,
                       f"{round2(upside)}% upside to T2")


def _promoter_institutional(s: IndicatorSnapshot) -> ScoreFactor:
    pledge = s.promoter_pledge_pct
    if not is_num(pledge):
        return _missing("Promoter & Institutional", "promoter pledge")
    if pledge == 0 and s.institutional_buying:
        pts, note = 10, "no pledge, institutions buying"
    elif pledge == 0:
        pts, note = 8, "no pledge"
    elif pledge < 15:
        pts, note = 7, "low pledge"
    elif pledge <= 30:
        pts, note = 4, "moderate pledge"
    else:
        pts, note = 1, "high pledge"
    return ScoreFactor("Promoter & Institutional", pledge, pts, 0,
                       f"Promoter pledge {round2(pledge)}% ({note})")


def _price_accessibility(s: IndicatorSnapshot) -> ScoreFactor:
    price = s.price
    if not is_num(price) or price <= 0:
        return _missing("Price Accessibility", "price")
    if price <= 200:
        pts = 5
    elif price <= 500:
        pts = 4
    elif price <= 1000:
        pts = 3
    elif price <= 2000:
        pts = 2
    else:
        pts = 1
    return ScoreFactor("Price Accessibility", price, pts, 0,
                       f"Price {cfg.CURRENCY_SYMBOL}{round2(price)}")


def momentum_factors(s: IndicatorSnapshot, levels: Optional[SwingLevels]) -> list[ScoreFactor]:
    return _sized("momentum", [
        _volume_conviction(s),
        _rr_factor(levels, [(3.0, 20), (2.5, 17), (2.0, 14), (1.5, 10), (1.2, 5)], 0),
        _rsi_position(s),
        _weekly_move(s),
        _upside_to_target(s, levels),
        _promoter_institutional(s),
        _price_accessibility(s),
    ])


# ═════════════════════════════════════════════════════════════════════════════
#  PULLBACK RUBRIC  (inverted priorities)
# ═════════════════════════════════════════════════════════════════════════════

def _ema20_proximity(s: IndicatorSnapshot) -> ScoreFactor:
    if not (is_num(s.price) and is_num(s.ema20)) or s.ema20 <= 0:
        return _missing("EMA20 Proximity", "EMA20")
    dist = abs(s.price - s.ema20) / s.ema20 * 100
    if dist <= 0.5:
        pts = 25
    elif dist <= 1:
        pts = 22
    elif dist <= 2:
        pts = 18
    elif dist <= 3:
        pts = 12
    elif dist <= 5:
        pts = 6
    else:
        pts = 2
    return ScoreFactor("EMA20 Proximity", round2(dist), pts, 0, f"{round2(dist)}% from EMA20")


def _volume_decline(s: IndicatorSnapshot) -> ScoreFactor:
    v = s.volume_vs_avg
    if not is_num(v):
        return _missing("Volume Decline Quality", "volume")
    if v <= 0.6:
        pts = 20
    elif v <= 0.7:
        pts = 18
    elif v <= 0.8:
        pts = 16
    elif v <= 0.9:
        pts = 13
    elif v <= 1.0:
        pts = 10
    elif v <= 1.3:
        pts = 5
    else:
        pts = 0
    return ScoreFactor("Volume Decline Quality", v, pts, 0,
                       f"Pullback volume {round2(v)}x average")


def _rsi_cooling(s: IndicatorSnapshot) -> ScoreFactor:
    rsi = s.rsi
    if not is_num(rsi):
        return _missing("RSI Cooling", "RSI")
    if 45 <= rsi <= 52:
        pts, note = 15, "ideal reset"
    elif 52 < rsi <= 58:
        pts, note = 12, "cooled"
    elif 40 <= rsi < 45:
        pts, note = 8, "deep reset"
    elif 58 < rsi <= 65:
        pts, note = 6, "still warm"
    elif 35 <= rsi < 40:
        pts, note = 4, "weak"
    else:
        pts, note = 0, "outside pullback range"
    return ScoreFactor("RSI Cooling", rsi, pts, 0, f"RSI {round2(rsi)} ({note})")


def _trend_structure(s: IndicatorSnapshot) -> ScoreFactor:
    pts = 0
    parts = []
    if is_num(s.ema20) and is_num(s.ema50) and s.ema20 > s.ema50:
        pts += 6
        parts.append("EMA20>EMA50")
    if is_num(s.ema50) and is_num(s.sma200) and s.ema50 > s.sma200:
        pts += 5
        parts.append("EMA50>SMA200")
    if is_num(s.price) and is_num(s.sma200) and s.price > s.sma200:
        pts += 4
        parts.append("Price>SMA200")
    reason = "Trend " + (", ".join(parts) if parts else "structure not aligned")
    return ScoreFactor("Trend Structure", len(parts), pts, 0, reason)


def _relative_strength(s: IndicatorSnapshot) -> ScoreFactor:
    if not (is_num(s.return_1m) and is_num(s.benchmark_return_1m)):
        return _missing("Relative Strength", "relative strength")
    out = s.return_1m - s.benchmark_return_1m
    pts = _ladder(out, [(8, 5), (5, 4), (2, 3), (0, 2)], 0)
    return ScoreFactor("Relative Strength", round2(out), pts, 0,
                       f"{round2(out):+}% vs benchmark (1M)")


def _atr_tradability(s: IndicatorSnapshot) -> ScoreFactor:
    a = s.atr_pct
    if not is_num(a):
        return _missing("ATR% Tradability", "ATR%")
    if 1.5 <= a <= 3.5:
        pts = 5
    elif 1 <= a < 1.5 or 3.5 < a <= 5:
        pts = 3
    else:
        pts = 1
    return ScoreFactor("ATR% Tradability", a, pts, 0, f"ATR {round2(a)}% of price")


def pullback_factors(s: IndicatorSnapshot, levels: Optional[SwingLevels]) -> list[ScoreFactor]:
    return _sized("pullback", [
        _ema20_proximity(s),
        _volume_decline(s),
        _rsi_cooling(s),
        _trend_structure(s),
        _rr_factor(levels, [(2.5, 15), (2.0, 13), (1.5, 10), (1.3, 6), (1.0, 3)], 0),
        _relative_strength(s),
        _atr_tradability(s),
    ])


# ═════════════════════════════════════════════════════════════════════════════
#  RUBRIC SELECTION
# ═════════════════════════════════════════════════════════════════════════════

def rubric_for(scan_type: str) -> Rubric:
    return "pullback" if scan_type == "pullback" else "momentum"


def score_setup(setup: Setup, snapshot: IndicatorSnapshot,
                levels: Optional[SwingLevels]) -> ScoreResult:
    """Score a setup with the one rubric its scan type selects."""
    rubric = rubric_for(setup.scan_type)
    builder = pullback_factors if rubric == "pullback" else momentum_factors
    return score(builder(snapshot, levels), rubric)
