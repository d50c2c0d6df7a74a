"""Setup classification, levels, scoring, cards and freshness."""

from .models import (  # noqa: F401
    AnalysisCard,
    Candle,
    ClassificationResult,
    DirectionalLevels,
    AvoidLevels,
    IndicatorSnapshot,
    NeutralLevels,
    Rejection,
    ScoreFactor,
    ScoreResult,
    Setup,
    SwingLevels,
)
