"""
Analysis card builder.

Pure assembly of the externally visible artifact.  A card is either the
complete quick-reject shape (classification said no) or the complete full
shape (setup + optional levels + score); nothing here performs I/O.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import config as cfg
from utils.numbers import is_num, round2
from .models import (
    AnalysisCard,
    CardWarning,
    ClassificationResult,
    IndicatorSnapshot,
    QuickReject,
    Rejection,
    ScoreResult,
    Setup,
    SetupScore,
    SwingLevels,
    TradingPlan,
    Verdict,
)

_CUR = cfg.CURRENCY_SYMBOL

SCAN_LABELS = {
    "a_plus_momentum": "A+ Momentum",
    "momentum": "Momentum",
    "breakout": "Breakout",
    "pullback": "Pullback",
    "consolidation_breakout": "Consolidation Breakout",
}


def _fmt(value: Optional[float], fallback: str = "N/A") -> str:
    return f"{_CUR}{round2(value)}" if is_num(value) else fallback


def _first(*values: Optional[float]) -> Optional[float]:
    for v in values:
        if is_num(v):
            return round2(v)
    return None


# ═════════════════════════════════════════════════════════════════════════════
#  QUICK REJECT
# ═════════════════════════════════════════════════════════════════════════════

def _watch_below_200sma(s: IndicatorSnapshot) -> dict[str, Any]:
    return {
        "resistance": _first(s.ema20),
        "support": _first(s.daily_s1, s.todays_low * 0.98 if is_num(s.todays_low) else None),
        "trend_change": _first(s.sma200),
        "watch_for": f"Price to reclaim {_fmt(s.sma200)} (200-day MA)",
    }


def _watch_weak_momentum(s: IndicatorSnapshot) -> dict[str, Any]:
    return {
        "resistance": _first(s.ema20),
        "support": _first(s.daily_s1, s.weekly_s1),
        "recovery_signal": f"RSI crossing above {cfg.RSI_RECOVERY_LEVEL:g}",
        "watch_for": f"RSI recovery above {cfg.RSI_RECOVERY_LEVEL:g} with price holding support",
    }


def _watch_trend_broken(s: IndicatorSnapshot) -> dict[str, Any]:
    return {
        "resistance": _first(s.ema20),
        "major_resistance": _first(s.ema50),
        "support": _first(s.daily_s1, s.weekly_s1),
        "watch_for": f"Price to reclaim {_fmt(s.ema20)} (20-day MA)",
    }


def _watch_overbought(s: IndicatorSnapshot) -> dict[str, Any]:
    return {
        "pullback_zone": _first(s.ema20),
        "deeper_support": _first(s.ema50),
        "current_resistance": _first(s.daily_r1, s.weekly_r1),
        "watch_for": f"Pullback to {_fmt(s.ema20)} (EMA20) for better entry",
    }


def _watch_default(s: IndicatorSnapshot) -> dict[str, Any]:
    return {
        "resistance": _first(s.daily_r1, s.weekly_r1),
        "support": _first(s.daily_s1, s.weekly_s1),
        "watch_for": "Clear setup pattern to emerge",
    }


LEVELS_TO_WATCH: dict[str, Callable[[IndicatorSnapshot], dict[str, Any]]] = {
    "below_200sma": _watch_below_200sma,
    "weak_momentum": _watch_weak_momentum,
    "trend_broken": _watch_trend_broken,
    "overbought": _watch_overbought,
    "overbought_daily": _watch_overbought,
    "insufficient_data": _watch_default,
    "unclear": _watch_default,
}


def key_message(rejection: Rejection, s: IndicatorSnapshot) -> str:
    base = rejection.message
    reason = rejection.reason
    if reason == "below_200sma":
        return (f"{base} Watch for price to reclaim {_fmt(s.sma200, 'the 200-day MA')} "
                f"before considering entry.")
    if reason == "weak_momentum":
        rsi = round2(s.rsi) if is_num(s.rsi) else "N/A"
        return f"{base} Current RSI: {rsi}. Wait for bullish momentum to return."
    if reason == "trend_broken":
        return (f"{base} Wait for price to reclaim the 20-day MA ({_fmt(s.ema20)}) "
                f"before considering entry.")
    if reason == "overbought":
        wrsi = round2(s.weekly_rsi) if is_num(s.weekly_rsi) else "N/A"
        return (f"{base} Current weekly RSI: {wrsi}. "
                f"Wait for pullback to EMA20 ({_fmt(s.ema20)}) for better risk/reward.")
    if reason == "overbought_daily":
        return f"{base} Wait for pullback to EMA20 ({_fmt(s.ema20)}) for better entry."
    return base


def _indicator_echo(s: IndicatorSnapshot) -> dict[str, Optional[float]]:
    return {
        "rsi": _first(s.rsi),
        "weekly_rsi": _first(s.weekly_rsi),
        "ema20": _first(s.ema20),
        "ema50": _first(s.ema50),
        "sma200": _first(s.sma200),
        "high_52w": _first(s.high_52w),
    }


# ═════════════════════════════════════════════════════════════════════════════
#  FULL CARD
# ═════════════════════════════════════════════════════════════════════════════

def action_for(grade: str, has_levels: bool) -> str:
    if not has_levels:
        return "WAIT"
    if grade in cfg.BUY_GRADES:
        return "BUY"
    if grade in cfg.WAIT_GRADES:
        return "WAIT"
    return "SKIP"


def build_warnings(s: IndicatorSnapshot, levels: Optional[SwingLevels]) -> tuple[CardWarning, ...]:
    """Fixed rule checks, independent of the score."""
    warnings = []
    if is_num(s.volume_vs_avg) and s.volume_vs_avg < cfg.WARN_LOW_VOLUME_RATIO:
        warnings.append(CardWarning(
            code="LOW_VOLUME",
            severity="medium",
            message=f"Volume is {round2(s.volume_vs_avg)}x average - below normal conviction",
            mitigation="Wait for volume confirmation before entering",
        ))
    if is_num(s.rsi) and s.rsi > cfg.WARN_RSI_ELEVATED:
        warnings.append(CardWarning(
            code="RSI_ELEVATED",
            severity="low",
            message=f"RSI at {round2(s.rsi)} is elevated - stock is running hot",
            mitigation="Consider smaller position size or wait for pullback",
        ))
    if is_num(s.atr_pct) and s.atr_pct > cfg.WARN_HIGH_ATR_PCT:
        warnings.append(CardWarning(
            code="HIGH_VOLATILITY",
            severity="medium",
            message=f"ATR% is {round2(s.atr_pct)}% - high volatility means wider swings",
            mitigation="Use smaller position size to manage risk",
        ))
    if levels is not None and levels.risk_reward < cfg.WARN_LOW_RISK_REWARD:
        warnings.append(CardWarning(
            code="LOW_RR",
            severity="high",
            message=f"Risk:Reward is 1:{round2(levels.risk_reward)} - below ideal 1:2 threshold",
            mitigation="Consider skipping this setup or waiting for better entry",
        ))
    return tuple(warnings)


def _trading_plan(levels: SwingLevels) -> TradingPlan:
    return TradingPlan(
        entry=levels.entry,
        entry_zone=levels.entry_zone,
        stop_loss=levels.stop_loss,
        target_1=levels.target_1,
        target_1_basis=levels.target_1_basis,
        target_2=levels.target_2,
        target_2_basis=levels.target_2_basis,
        target_3=levels.target_3,
        risk_reward=levels.risk_reward,
        risk_percent=levels.risk_percent,
        reward_percent=levels.reward_percent,
    )


def build_card(
    classification: ClassificationResult,
    snapshot: IndicatorSnapshot,
    levels: Optional[SwingLevels] = None,
    score: Optional[ScoreResult] = None,
    *,
    instrument_id: str,
    freshness_key: str,
    generated_at: str,
    analysis_kind: str = cfg.DEFAULT_ANALYSIS_KIND,
) -> AnalysisCard:
    """
    Quick-reject card for a Rejection; full card for a Setup.

    *levels* and *score* are ignored on the reject path.  On the setup
    path a missing score counts as 0/F and missing levels force WAIT.
    The card depends only on the arguments; the caller supplies
    *generated_at*.
    """
    common = dict(
        instrument_id=instrument_id,
        analysis_kind=analysis_kind,
        freshness_key=freshness_key,
        generated_at=generated_at,
        schema_version=cfg.CARD_SCHEMA_VERSION,
    )

    if isinstance(classification, Rejection):
        watch = LEVELS_TO_WATCH.get(classification.reason, _watch_default)
        return AnalysisCard(
            verdict=Verdict(
                action="NO_TRADE",
                confidence=cfg.QUICK_REJECT_CONFIDENCE,
                one_liner=classification.message,
            ),
            setup_score=SetupScore(total=0, grade=cfg.GRADE_FLOOR),
            quick_reject=QuickReject(
                reason=classification.reason,
                current_price=_first(snapshot.price),
                key_message=key_message(classification, snapshot),
                levels_to_watch=watch(snapshot),
                indicators=_indicator_echo(snapshot),
                details=dict(classification.details),
            ),
            **common,
        )

    setup: Setup = classification
    result = score or ScoreResult(total=0, grade=cfg.GRADE_FLOOR)
    label = SCAN_LABELS.get(setup.scan_type, setup.scan_type)
    return AnalysisCard(
        verdict=Verdict(
            action=action_for(result.grade, levels is not None),
            confidence=round2(result.total / 100),
            one_liner=f"{label} setup | Grade {result.grade} | {setup.message}",
        ),
        setup_score=SetupScore(
            total=result.total,
            grade=result.grade,
            breakdown=result.breakdown,
            strengths=tuple(result.strengths),
            watch_factors=tuple(result.watch_factors),
        ),
        trading_plan=_trading_plan(levels) if levels is not None else None,
        warnings=build_warnings(snapshot, levels),
        scan_type=setup.scan_type,
        **common,
    )
