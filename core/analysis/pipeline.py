"""
On-demand setup analysis: freshness check, classify, levels, score, card.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Sequence

import config as cfg
from utils import market_hours
from utils.logger import get_logger
from .cards import build_card
from .classifier import classify
from .freshness import FreshnessController
from .levels import calculate_atr, calculate_swing_levels
from .models import AnalysisCard, Candle, IndicatorSnapshot, Rejection, sort_candles
from .scoring import score_setup

log = get_logger("pipeline")


class DataProvider(ABC):
    """Source of indicator snapshots and daily candles for one instrument."""

    @abstractmethod
    def get_snapshot(self, instrument_id: str) -> Optional[IndicatorSnapshot]:
        """Latest snapshot, or None when the provider has nothing usable."""
        pass

    @abstractmethod
    def get_candles(self, instrument_id: str, count: int) -> Sequence[Candle]:
        """Up to *count* most recent daily candles, any order."""
        pass


@dataclass(frozen=True)
class AnalysisOutcome:
    card: AnalysisCard
    cached: bool


def _session_date(candle: Candle) -> date:
    ts = datetime.fromtimestamp(candle.timestamp, tz=timezone.utc)
    return market_hours.to_market_time(ts).date()


def completed_candles(candles: Sequence[Candle], freshness_key: str) -> list[Candle]:
    """Ascending candles up to and including the session named by *freshness_key*."""
    cutoff = date.fromisoformat(freshness_key)
    return [c for c in sort_candles(candles) if _session_date(c) <= cutoff]


class SetupAnalyzer:
    """Serves one analysis card per instrument per freshness key."""

    def __init__(
        self,
        provider: DataProvider,
        controller: FreshnessController,
        analysis_kind: str = cfg.DEFAULT_ANALYSIS_KIND,
    ):
        self.provider = provider
        self.controller = controller
        self.analysis_kind = analysis_kind

    def _fetch_snapshot(self, rid: str, instrument_id: str) -> Optional[IndicatorSnapshot]:
        try:
            return self.provider.get_snapshot(instrument_id)
        except Exception as e:
            log.warning(f"[{rid}] {instrument_id}: snapshot fetch failed: {e}")
            return None

    def _fetch_candles(self, rid: str, instrument_id: str) -> Optional[list[Candle]]:
        """Candles from the provider; None when the fetch itself failed."""
        try:
            return list(self.provider.get_candles(instrument_id, cfg.CANDLE_LOOKBACK) or [])
        except Exception as e:
            log.warning(f"[{rid}] {instrument_id}: candle fetch failed: {e}")
            return None

    def analyze(self, instrument_id: str, now: Optional[datetime] = None) -> AnalysisOutcome:
        now = market_hours.as_utc(now or market_hours.utcnow())
        rid = uuid.uuid4().hex[:8]
        kind = self.analysis_kind

        cached = self.controller.resolve(instrument_id, kind, now)
        if cached is not None:
            log.info(f"[{rid}] {instrument_id}: cache hit ({cached.card.freshness_key})")
            return AnalysisOutcome(card=cached.card, cached=True)

        fkey = self.controller.current_key(now)
        generated_at = now.isoformat()
        snapshot = self._fetch_snapshot(rid, instrument_id)
        data_missing = snapshot is None
        if data_missing:
            # empty snapshot falls through the price gate as insufficient_data
            snapshot = IndicatorSnapshot()

        classification = classify(snapshot)
        log.info(
            f"[{rid}] {instrument_id}: classified "
            f"{classification.scan_type if classification.is_setup else classification.reason}"
        )

        if isinstance(classification, Rejection):
            card = build_card(
                classification, snapshot,
                instrument_id=instrument_id, analysis_kind=kind,
                freshness_key=fkey, generated_at=generated_at,
            )
        else:
            fetched = self._fetch_candles(rid, instrument_id)
            data_missing = fetched is None
            candles = completed_candles(fetched or [], fkey)
            atr = calculate_atr(candles)
            last = candles[-1] if candles else None
            levels = calculate_swing_levels(classification.scan_type, snapshot, last, atr)
            if levels is None:
                log.info(f"[{rid}] {instrument_id}: no valid levels (atr={atr})")
            result = score_setup(classification, snapshot, levels)
            log.info(f"[{rid}] {instrument_id}: score {result.total} grade {result.grade}")
            card = build_card(
                classification, snapshot, levels, result,
                instrument_id=instrument_id, analysis_kind=kind,
                freshness_key=fkey, generated_at=generated_at,
            )

        if data_missing:
            log.warning(f"[{rid}] {instrument_id}: data unavailable, card not cached")
        else:
            self.controller.commit(instrument_id, kind, fkey, card, now)
        log.info(f"[{rid}] {instrument_id}: {card.verdict.action} ({fkey})")
        return AnalysisOutcome(card=card, cached=False)
