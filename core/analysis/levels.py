"""
Level calculator: ATR, classic pivots, intraday ATR levels and structural
swing levels with guardrails.

Every function returns None instead of raising when its inputs are
insufficient; the caller decides what "no levels" means for the card.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

import pandas as pd

import config as cfg
from utils.logger import get_logger
from utils.numbers import is_num, round2, round_to_tick
from .models import (
    AvoidLevels,
    Candle,
    DirectionalLevels,
    EntryZone,
    IndicatorSnapshot,
    IntradayLevels,
    NeutralLevels,
    PivotSet,
    SwingLevels,
    sort_candles,
)

log = get_logger("levels")

BREAKOUT_SCANS = ("a_plus_momentum", "breakout", "momentum", "consolidation_breakout")


# ═════════════════════════════════════════════════════════════════════════════
#  ATR & PIVOTS
# ═════════════════════════════════════════════════════════════════════════════

def candles_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Ascending OHLCV frame indexed by position."""
    ordered = sort_candles(candles)
    return pd.DataFrame(
        [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in ordered],
        columns=["timestamp", "open", "high", "low", "close", "volume"],
    )


def true_range(df: pd.DataFrame) -> pd.Series:
    """True range per bar; the first bar has no previous close and is dropped."""
    prev_close = df["close"].shift(1)
    tr = pd.concat(
        [(df["high"] - df["low"]).abs(),
         (df["high"] - prev_close).abs(),
         (df["low"] - prev_close).abs()],
        axis=1,
    ).max(axis=1)
    return tr.iloc[1:]


def calculate_atr(candles: Optional[Iterable[Candle]], period: int = cfg.ATR_PERIOD) -> Optional[float]:
    """
    Simple-average ATR of the last *period* true ranges.

    Needs at least ``period + 1`` candles; returns None otherwise.
    """
    candles = list(candles or [])
    if period <= 0:
        log.warning(f"ATR period must be positive, got {period}")
        return None
    if len(candles) < period + 1:
        log.warning(f"Insufficient candles for ATR: {len(candles)} < {period + 1}")
        return None
    tr = true_range(candles_frame(candles))
    return round2(float(tr.tail(period).mean()))


def calculate_pivot_points(candle: Candle) -> PivotSet:
    """Classic floor pivots.  Reference only; never used for tradeable levels."""
    high, low, close = candle.high, candle.low, candle.close
    p = round2((high + low + close) / 3)
    return PivotSet(
        P=p,
        R1=round2(2 * p - low),
        R2=round2(p + (high - low)),
        S1=round2(2 * p - high),
        S2=round2(p - (high - low)),
    )


# ═════════════════════════════════════════════════════════════════════════════
#  INTRADAY  (previous close ± news-adjusted ATR)
# ═════════════════════════════════════════════════════════════════════════════

def calculate_intraday_levels(
    prev_day_candle: Optional[Candle],
    atr14: Optional[float],
    sentiment: Optional[str],
    news_impact: Optional[str],
    opening_price: Optional[float] = None,
) -> Optional[IntradayLevels]:
    """
    Intraday plan for the session after *prev_day_candle*.

    BUY/SELL when sentiment is directional, NEUTRAL (zone only) otherwise,
    AVOID when the open has already gapped more than 1.2 adjusted ATRs.
    """
    if prev_day_candle is None or not is_num(atr14) or atr14 <= 0:
        log.warning("Intraday levels need a previous-day candle and a positive ATR")
        return None

    prev_close = prev_day_candle.close
    multiplier = cfg.INTRADAY_ATR_MULTIPLIERS.get(news_impact, cfg.INTRADAY_DEFAULT_MULTIPLIER)
    adjusted = round2(atr14 * multiplier)

    if is_num(opening_price) and opening_price > 0:
        gap = abs(opening_price - prev_close)
        if gap > cfg.INTRADAY_GAP_MAX_ATR * adjusted:
            log.info(
                f"Gap {round2(gap)} > {cfg.INTRADAY_GAP_MAX_ATR}x adjusted ATR "
                f"{adjusted} → AVOID"
            )
            return AvoidLevels(
                reason="Gap too wide for safe entry",
                gap_amount=round2(gap),
                gap_pct=round2(gap / prev_close * 100),
                gap_vs_atr=round2(gap / adjusted),
                prev_close=round2(prev_close),
                opening_price=round2(opening_price),
                atr=round2(atr14),
                adjusted_atr=adjusted,
            )

    zone = EntryZone(
        low=round2(prev_close - cfg.INTRADAY_ENTRY_ZONE_ATR * adjusted),
        high=round2(prev_close + cfg.INTRADAY_ENTRY_ZONE_ATR * adjusted),
    )
    pivots = calculate_pivot_points(prev_day_candle)

    if sentiment not in ("BULLISH", "BEARISH"):
        return NeutralLevels(
            entry_zone=zone,
            message="News sentiment unclear - no trade recommendation",
            atr=round2(atr14),
            adjusted_atr=adjusted,
            atr_multiplier=multiplier,
            news_impact=news_impact,
            pivots=pivots,
        )

    sign = 1 if sentiment == "BULLISH" else -1
    return DirectionalLevels(
        direction="BUY" if sign > 0 else "SELL",
        entry=round2(prev_close),
        entry_zone=zone,
        stop_loss=round2(prev_close - sign * cfg.INTRADAY_STOP_ATR * adjusted),
        target_1=round2(prev_close + sign * cfg.INTRADAY_TARGET1_ATR * adjusted),
        target_2=round2(prev_close + sign * cfg.INTRADAY_TARGET2_ATR * adjusted),
        atr=round2(atr14),
        adjusted_atr=adjusted,
        atr_multiplier=multiplier,
        news_impact=news_impact,
        pivots=pivots,
    )


# ═════════════════════════════════════════════════════════════════════════════
#  SWING  (structural entry / stop, pivot target waterfall)
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class GuardrailResult:
    valid: bool
    reason: str = ""
    target: float = 0.0
    risk_reward: float = 0.0
    risk_percent: float = 0.0
    reward_percent: float = 0.0
    adjustments: list[str] = field(default_factory=list)


def apply_guardrails(entry: float, stop: float, target: float) -> GuardrailResult:
    """
    Sanity rules for a long plan.  Violations reject the plan; only an
    unrealistic target is adjusted (capped).
    """
    if not all(is_num(v) for v in (entry, stop, target)):
        return GuardrailResult(False, "Invalid levels calculated (missing values)")
    if entry <= 0 or stop <= 0 or target <= 0:
        return GuardrailResult(False, "Invalid levels calculated (zero or negative values)")
    if stop >= entry:
        return GuardrailResult(False, f"Stop ({round2(stop)}) must be below entry ({round2(entry)})")
    if target <= entry:
        return GuardrailResult(False, f"Target ({round2(target)}) must be above entry ({round2(entry)})")

    risk = entry - stop
    risk_pct = risk / entry * 100
    if risk_pct > cfg.GUARD_MAX_RISK_PCT:
        return GuardrailResult(
            False, f"Risk too high: {round2(risk_pct)}% (max {cfg.GUARD_MAX_RISK_PCT}%)",
            risk_percent=round2(risk_pct),
        )
    if risk_pct < cfg.GUARD_MIN_RISK_PCT:
        return GuardrailResult(
            False, f"Risk too small: {round2(risk_pct)}% (min {cfg.GUARD_MIN_RISK_PCT}%)",
            risk_percent=round2(risk_pct),
        )

    reward_pct = (target - entry) / entry * 100
    if reward_pct < cfg.GUARD_MIN_REWARD_PCT:
        return GuardrailResult(
            False, f"Target too close: {round2(reward_pct)}% (min {cfg.GUARD_MIN_REWARD_PCT}%)",
            reward_percent=round2(reward_pct),
        )

    adjustments: list[str] = []
    if reward_pct > cfg.GUARD_MAX_REWARD_PCT:
        target = entry * (1 + cfg.GUARD_MAX_REWARD_PCT / 100)
        adjustments.append(
            f"Target capped from {round2(reward_pct)}% to {cfg.GUARD_MAX_REWARD_PCT}%"
        )

    rr = (target - entry) / risk
    if rr < cfg.GUARD_MIN_RISK_REWARD:
        return GuardrailResult(
            False, f"R:R too low: {round2(rr)}:1 (min {cfg.GUARD_MIN_RISK_REWARD}:1)",
            risk_reward=round2(rr),
        )

    return GuardrailResult(
        valid=True,
        target=target,
        risk_reward=round2(rr),
        risk_percent=round2(risk_pct),
        reward_percent=round2((target - entry) / entry * 100),
        adjustments=adjustments,
    )


def _first_above(candidates: list[tuple[str, Optional[float]]], floor: float) -> Optional[tuple[str, float]]:
    for basis, value in candidates:
        if is_num(value) and value > floor:
            return basis, value
    return None


def _breakout_plan(s: IndicatorSnapshot, candle: Candle, pivots: PivotSet) -> Optional[dict]:
    tick = cfg.PRICE_TICK
    entry = round_to_tick(candle.high * cfg.SWING_BREAKOUT_ENTRY_MULT, tick)
    zone = EntryZone(entry, round_to_tick(entry * (1 + cfg.SWING_BREAKOUT_ZONE_PCT / 100), tick))

    floor = max(s.ema20, s.weekly_s1) if is_num(s.weekly_s1) and s.weekly_s1 > 0 else s.ema20
    stop = round_to_tick(floor * cfg.SWING_STOP_BUFFER_MULT, tick)
    max_stop = round_to_tick(entry * (1 - cfg.SWING_BREAKOUT_MAX_STOP_PCT / 100), tick)
    if stop < max_stop:
        log.debug(f"breakout stop {stop} wider than {cfg.SWING_BREAKOUT_MAX_STOP_PCT}% → {max_stop}")
        stop = max_stop

    ladder = [("weekly_r1", s.weekly_r1), ("pivot_r2", pivots.R2)]
    hit = _first_above(ladder, entry)
    if hit:
        t2_basis, t2 = hit
    else:
        t2_basis, t2 = "pct_3_fallback", entry * cfg.SWING_FALLBACK_T2_MULT
    t2 = round_to_tick(t2, tick)

    t3_hit = _first_above([(b, v) for b, v in ladder if b != t2_basis], t2)
    t3 = round_to_tick(t3_hit[1] if t3_hit else entry * cfg.SWING_FALLBACK_T3_MULT, tick)

    return {"archetype": "breakout", "entry": entry, "zone": zone, "stop": stop,
            "t2": t2, "t2_basis": t2_basis, "t3": t3}


def _pullback_plan(s: IndicatorSnapshot, candle: Candle, pivots: PivotSet) -> Optional[dict]:
    tick = cfg.PRICE_TICK
    entry = round_to_tick(candle.high * cfg.SWING_PULLBACK_ENTRY_MULT, tick)
    zone = EntryZone(entry, round_to_tick(entry * (1 + cfg.SWING_PULLBACK_ZONE_PCT / 100), tick))

    floor = max(candle.low, s.ema20) if candle.low > 0 else s.ema20
    stop = round_to_tick(floor * cfg.SWING_STOP_BUFFER_MULT, tick)

    ladder = [("weekly_r1", s.weekly_r1), ("pivot_r2", pivots.R2), ("high_52w", s.high_52w)]
    hit = _first_above(ladder, entry)
    if hit is None:
        log.info("Pullback rejected: no structural target above entry")
        return None
    t2_basis, t2 = hit
    t2 = round_to_tick(t2, tick)

    t3_hit = _first_above([(b, v) for b, v in ladder if b != t2_basis], t2)
    t3 = round_to_tick(t3_hit[1], tick) if t3_hit else None

    return {"archetype": "pullback", "entry": entry, "zone": zone, "stop": stop,
            "t2": t2, "t2_basis": t2_basis, "t3": t3}


def _partial_booking(entry: float, t2: float, daily_r1: Optional[float]) -> tuple[float, str]:
    """T1: daily R1 when it sits comfortably between entry and T2, else the midpoint."""
    lo = entry * cfg.SWING_T1_MIN_MULT
    hi = t2 * cfg.SWING_T1_MAX_T2_MULT
    if is_num(daily_r1) and lo < daily_r1 < hi:
        return round_to_tick(daily_r1, cfg.PRICE_TICK), "daily_r1"
    return round_to_tick(entry + (t2 - entry) * 0.5, cfg.PRICE_TICK), "midpoint"


def calculate_swing_levels(
    scan_type: str,
    snapshot: IndicatorSnapshot,
    last_candle: Optional[Candle],
    atr: Optional[float],
) -> Optional[SwingLevels]:
    """
    Multi-day BUY plan from the last completed session's candle.

    Breakout-family scans buy above the high with a stop under EMA20 / weekly
    S1; pullbacks buy a reclaim of the high with a stop under the session
    low / EMA20.  Returns None when data is missing or a guardrail rejects.
    """
    if not is_num(atr) or atr <= 0:
        log.info("Swing levels skipped: ATR unavailable")
        return None
    if not is_num(snapshot.ema20) or snapshot.ema20 <= 0:
        log.info("Swing levels skipped: EMA20 unavailable")
        return None
    if last_candle is None or last_candle.high <= 0 or last_candle.close <= 0:
        log.info("Swing levels skipped: last session candle unavailable")
        return None

    pivots = calculate_pivot_points(last_candle)
    if scan_type == "pullback":
        plan = _pullback_plan(snapshot, last_candle, pivots)
    elif scan_type in BREAKOUT_SCANS:
        plan = _breakout_plan(snapshot, last_candle, pivots)
    else:
        log.warning(f"Unknown scan type for swing levels: {scan_type}")
        return None
    if plan is None:
        return None

    guarded = apply_guardrails(plan["entry"], plan["stop"], plan["t2"])
    if not guarded.valid:
        log.info(f"Swing levels rejected by guardrails: {guarded.reason}")
        return None

    t2 = round_to_tick(guarded.target, cfg.PRICE_TICK)
    t3 = plan["t3"] if plan["t3"] is not None and plan["t3"] > t2 else None
    t1, t1_basis = _partial_booking(plan["entry"], t2, snapshot.daily_r1)

    log.debug(
        f"swing {plan['archetype']}: entry={plan['entry']} stop={plan['stop']} "
        f"T1={t1} T2={t2} T3={t3} R:R={guarded.risk_reward}"
    )
    return SwingLevels(
        entry=plan["entry"],
        entry_zone=plan["zone"],
        stop_loss=plan["stop"],
        target_1=t1,
        target_1_basis=t1_basis,
        target_2=t2,
        target_2_basis=plan["t2_basis"],
        target_3=t3,
        risk_reward=guarded.risk_reward,
        risk_percent=guarded.risk_percent,
        reward_percent=guarded.reward_percent,
        archetype=plan["archetype"],
        adjustments=tuple(guarded.adjustments),
    )
