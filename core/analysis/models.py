"""
Setup analysis data model.

Classification results, level sets and cards are tagged unions of frozen
dataclasses: a ``Setup`` always has a scan type, a ``Rejection`` always has
a reason, and nothing is mutated after construction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Mapping, Optional, Union

from utils.numbers import to_float


ScanType = Literal[
    "a_plus_momentum", "breakout", "momentum", "pullback", "consolidation_breakout",
]
RejectReason = Literal[
    "insufficient_data", "below_200sma", "weak_momentum", "trend_broken",
    "overbought", "overbought_daily", "unclear",
]
Direction = Literal["BUY", "SELL", "NEUTRAL", "AVOID"]
Sentiment = Literal["BULLISH", "BEARISH", "NEUTRAL"]
NewsImpact = Literal["HIGH", "MEDIUM", "LOW"]
Action = Literal["BUY", "WAIT", "SKIP", "NO_TRADE"]
Rubric = Literal["momentum", "pullback"]
FactorTag = Literal["strength", "watch", "neutral"]
Severity = Literal["low", "medium", "high"]


# ═════════════════════════════════════════════════════════════════════════════
#  INPUTS
# ═════════════════════════════════════════════════════════════════════════════

# provider (camelCase) name → snapshot field
_SNAPSHOT_ALIASES = {
    "weeklyRsi": "weekly_rsi",
    "high52W": "high_52w",
    "todaysLow": "todays_low",
    "dailyR1": "daily_r1",
    "dailyS1": "daily_s1",
    "weeklyR1": "weekly_r1",
    "weeklyS1": "weekly_s1",
    "weeklyChangePct": "weekly_change_pct",
    "return1M": "return_1m",
    "benchmarkReturn1M": "benchmark_return_1m",
    "promoterPledgePct": "promoter_pledge_pct",
    "institutionalBuying": "institutional_buying",
}


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Already-computed indicators for one instrument.  Any field may be None."""
    price: Optional[float] = None
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    sma200: Optional[float] = None
    rsi: Optional[float] = None
    weekly_rsi: Optional[float] = None
    high_52w: Optional[float] = None
    todays_low: Optional[float] = None
    daily_r1: Optional[float] = None
    daily_s1: Optional[float] = None
    weekly_r1: Optional[float] = None
    weekly_s1: Optional[float] = None
    volume_vs_avg: Optional[float] = None
    atr_pct: Optional[float] = None
    # rubric context
    weekly_change_pct: Optional[float] = None
    return_1m: Optional[float] = None
    benchmark_return_1m: Optional[float] = None
    promoter_pledge_pct: Optional[float] = None
    institutional_buying: Optional[bool] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IndicatorSnapshot":
        """Build from a provider dict; unknown keys are ignored, junk becomes None."""
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _SNAPSHOT_ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__:
                continue
            if name == "institutional_buying":
                kwargs[name] = value if isinstance(value, bool) else None
            else:
                kwargs[name] = to_float(value)
        return cls(**kwargs)


@dataclass(frozen=True)
class Candle:
    timestamp: int  # epoch seconds
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Candle":
        return cls(
            timestamp=int(data["timestamp"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume") or 0.0),
        )


def sort_candles(candles) -> list[Candle]:
    """Candles ascending by timestamp (providers are not trusted on order)."""
    return sorted(candles or [], key=lambda c: c.timestamp)


# ═════════════════════════════════════════════════════════════════════════════
#  CLASSIFICATION  (Setup | Rejection)
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Setup:
    scan_type: ScanType
    message: str

    @property
    def is_setup(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejection:
    reason: RejectReason
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_setup(self) -> bool:
        return False


ClassificationResult = Union[Setup, Rejection]


# ═════════════════════════════════════════════════════════════════════════════
#  LEVELS
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EntryZone:
    low: float
    high: float


@dataclass(frozen=True)
class PivotSet:
    P: float
    R1: float
    R2: float
    S1: float
    S2: float


@dataclass(frozen=True)
class DirectionalLevels:
    """Intraday BUY/SELL plan around the previous close."""
    direction: Literal["BUY", "SELL"]
    entry: float
    entry_zone: EntryZone
    stop_loss: float
    target_1: float
    target_2: float
    atr: float
    adjusted_atr: float
    atr_multiplier: float
    news_impact: Optional[str]
    pivots: PivotSet


@dataclass(frozen=True)
class NeutralLevels:
    """Intraday, sentiment unclear: reference zone only, no stop or targets."""
    entry_zone: EntryZone
    message: str
    atr: float
    adjusted_atr: float
    atr_multiplier: float
    news_impact: Optional[str]
    pivots: PivotSet
    direction: Literal["NEUTRAL"] = "NEUTRAL"


@dataclass(frozen=True)
class AvoidLevels:
    """Intraday, open gapped too far from the previous close."""
    reason: str
    gap_amount: float
    gap_pct: float
    gap_vs_atr: float
    prev_close: float
    opening_price: float
    atr: float
    adjusted_atr: float
    direction: Literal["AVOID"] = "AVOID"


@dataclass(frozen=True)
class SwingLevels:
    """Structural multi-day BUY plan."""
    entry: float
    entry_zone: EntryZone
    stop_loss: float
    target_1: float
    target_1_basis: str
    target_2: float
    target_2_basis: str
    target_3: Optional[float]
    risk_reward: float
    risk_percent: float
    reward_percent: float
    archetype: Literal["breakout", "pullback"]
    adjustments: tuple[str, ...] = ()
    direction: Literal["BUY"] = "BUY"


IntradayLevels = Union[DirectionalLevels, NeutralLevels, AvoidLevels]


# ═════════════════════════════════════════════════════════════════════════════
#  SCORING
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScoreFactor:
    name: str
    raw_value: Any
    points: float
    max: float
    reason: str


@dataclass(frozen=True)
class BreakdownEntry:
    factor: str
    points: float
    max: float
    reason: str
    raw_value: Any = None
    tag: FactorTag = "neutral"


@dataclass(frozen=True)
class ScoreResult:
    total: float
    grade: str
    rubric: Optional[Rubric] = None
    breakdown: tuple[BreakdownEntry, ...] = ()

    @property
    def strengths(self) -> list[str]:
        return [b.reason for b in self.breakdown if b.tag == "strength"]

    @property
    def watch_factors(self) -> list[str]:
        return [b.reason for b in self.breakdown if b.tag == "watch"]


# ═════════════════════════════════════════════════════════════════════════════
#  ANALYSIS CARD
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Verdict:
    action: Action
    confidence: float
    one_liner: str


@dataclass(frozen=True)
class SetupScore:
    total: float
    grade: str
    breakdown: tuple[BreakdownEntry, ...] = ()
    strengths: tuple[str, ...] = ()
    watch_factors: tuple[str, ...] = ()


@dataclass(frozen=True)
class TradingPlan:
    entry: float
    entry_zone: EntryZone
    stop_loss: float
    target_1: float
    target_1_basis: str
    target_2: float
    target_2_basis: str
    target_3: Optional[float]
    risk_reward: float
    risk_percent: float
    reward_percent: float


@dataclass(frozen=True)
class QuickReject:
    reason: RejectReason
    current_price: Optional[float]
    key_message: str
    levels_to_watch: dict[str, Any]
    indicators: dict[str, Optional[float]]
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CardWarning:
    code: str
    severity: Severity
    message: str
    mitigation: str


@dataclass(frozen=True)
class AnalysisCard:
    instrument_id: str
    analysis_kind: str
    freshness_key: str
    generated_at: str  # ISO-8601 UTC
    verdict: Verdict
    setup_score: SetupScore
    trading_plan: Optional[TradingPlan] = None
    quick_reject: Optional[QuickReject] = None
    warnings: tuple[CardWarning, ...] = ()
    scan_type: Optional[ScanType] = None
    schema_version: str = "1.5"

    @property
    def is_quick_reject(self) -> bool:
        return self.quick_reject is not None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisCard":
        """Inverse of ``to_dict`` (used by stores that persist JSON)."""
        score = data["setup_score"]
        plan = data.get("trading_plan")
        reject = data.get("quick_reject")
        return cls(
            instrument_id=data["instrument_id"],
            analysis_kind=data["analysis_kind"],
            freshness_key=data["freshness_key"],
            generated_at=data["generated_at"],
            verdict=Verdict(**data["verdict"]),
            setup_score=SetupScore(
                total=score["total"],
                grade=score["grade"],
                breakdown=tuple(BreakdownEntry(**b) for b in score.get("breakdown", ())),
                strengths=tuple(score.get("strengths", ())),
                watch_factors=tuple(score.get("watch_factors", ())),
            ),
            trading_plan=TradingPlan(
                **{**plan, "entry_zone": EntryZone(**plan["entry_zone"])}
            ) if plan else None,
            quick_reject=QuickReject(**reject) if reject else None,
            warnings=tuple(CardWarning(**w) for w in data.get("warnings", ())),
            scan_type=data.get("scan_type"),
            schema_version=data.get("schema_version", "1.5"),
        )
