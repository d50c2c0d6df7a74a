"""
Tests for core.analysis.cards: quick-reject and full card assembly.
"""

import json
import pytest

GEN_AT = "2025-02-10T11:00:00+00:00"


def _reject_card(snapshot):
    from core.analysis.cards import build_card
    from core.analysis.classifier import classify
    return build_card(classify(snapshot), snapshot, instrument_id="TEST",
                      freshness_key="2025-02-10", generated_at=GEN_AT)


def _levels(rr: float = 2.5):
    from core.analysis.models import EntryZone, SwingLevels
    return SwingLevels(
        entry=100.5, entry_zone=EntryZone(100.5, 101.5), stop_loss=99.0,
        target_1=105.25, target_1_basis="midpoint", target_2=110.0,
        target_2_basis="weekly_r1", target_3=None, risk_reward=rr,
        risk_percent=1.49, reward_percent=9.45, archetype="breakout",
    )


class TestQuickReject:
    def test_below_200sma_card(self):
        from core.analysis.models import IndicatorSnapshot
        snap = IndicatorSnapshot(price=80.0, ema20=85.0, ema50=88.0, sma200=90.0,
                                 rsi=40.0, todays_low=79.0)
        card = _reject_card(snap)
        assert card.is_quick_reject
        assert card.verdict.action == "NO_TRADE"
        assert card.verdict.confidence == 0.9
        assert card.verdict.one_liner == card.quick_reject.key_message.split(" Watch")[0]
        assert (card.setup_score.total, card.setup_score.grade) == (0, "F")
        assert card.trading_plan is None
        assert card.warnings == ()

        qr = card.quick_reject
        assert qr.reason == "below_200sma"
        assert qr.current_price == 80.0
        assert qr.levels_to_watch["resistance"] == 85.0
        assert qr.levels_to_watch["support"] == 77.42
        assert qr.levels_to_watch["trend_change"] == 90.0
        assert "(200-day MA)" in qr.levels_to_watch["watch_for"]
        assert "Watch for price to reclaim" in qr.key_message
        assert qr.details["distance_below"] == 11.11

    def test_weak_momentum_key_message(self):
        from core.analysis.models import IndicatorSnapshot
        snap = IndicatorSnapshot(price=100.0, sma200=90.0, rsi=30.0, daily_s1=97.0)
        qr = _reject_card(snap).quick_reject
        assert "Current RSI: 30.0" in qr.key_message
        assert qr.levels_to_watch["support"] == 97.0
        assert qr.levels_to_watch["recovery_signal"] == "RSI crossing above 45"

    def test_overbought_daily_shares_overbought_levels(self):
        from core.analysis.models import IndicatorSnapshot
        base = dict(price=100.0, ema20=96.0, ema50=92.0, sma200=80.0, weekly_r1=104.0)
        weekly = _reject_card(IndicatorSnapshot(weekly_rsi=75.0, rsi=60.0, **base)).quick_reject
        daily = _reject_card(IndicatorSnapshot(weekly_rsi=60.0, rsi=75.0, **base)).quick_reject
        assert weekly.reason == "overbought"
        assert daily.reason == "overbought_daily"
        assert weekly.levels_to_watch == daily.levels_to_watch
        assert weekly.levels_to_watch["current_resistance"] == 104.0
        assert "Current weekly RSI: 75.0" in weekly.key_message

    def test_indicator_echo(self):
        from core.analysis.models import IndicatorSnapshot
        snap = IndicatorSnapshot(price=100.0, ema20=90.333, sma200=80.0, rsi=30.0)
        ind = _reject_card(snap).quick_reject.indicators
        assert ind["ema20"] == 90.33
        assert ind["weekly_rsi"] is None
        assert set(ind) == {"rsi", "weekly_rsi", "ema20", "ema50", "sma200", "high_52w"}

    def test_missing_price(self):
        from core.analysis.models import IndicatorSnapshot
        card = _reject_card(IndicatorSnapshot())
        assert card.quick_reject.reason == "insufficient_data"
        assert card.quick_reject.current_price is None
        assert card.quick_reject.levels_to_watch["watch_for"] == "Clear setup pattern to emerge"


class TestFullCard:
    def _card(self, score=None, levels=None, **snap):
        from core.analysis.cards import build_card
        from core.analysis.models import IndicatorSnapshot, Setup
        s = IndicatorSnapshot(**{"price": 99.0, **snap})
        return build_card(Setup("breakout", "Stock is near 52-week high - breakout setup."),
                          s, levels, score, instrument_id="TEST",
                          freshness_key="2025-02-10", generated_at=GEN_AT)

    def test_buy_card(self):
        from core.analysis.models import ScoreResult
        card = self._card(ScoreResult(total=93, grade="A+"), _levels())
        assert not card.is_quick_reject
        assert card.verdict.action == "BUY"
        assert card.verdict.confidence == 0.93
        assert card.verdict.one_liner.startswith("Breakout setup | Grade A+ | ")
        assert card.trading_plan.entry == 100.5
        assert card.trading_plan.target_2_basis == "weekly_r1"
        assert card.scan_type == "breakout"

    @pytest.mark.parametrize("grade,action", [
        ("A+", "BUY"), ("A", "BUY"), ("B+", "BUY"), ("B", "WAIT"),
        ("C", "SKIP"), ("D", "SKIP"), ("F", "SKIP"),
    ])
    def test_action_from_grade(self, grade, action):
        from core.analysis.models import ScoreResult
        card = self._card(ScoreResult(total=50, grade=grade), _levels())
        assert card.verdict.action == action

    def test_no_levels_is_wait(self):
        from core.analysis.models import ScoreResult
        card = self._card(ScoreResult(total=93, grade="A+"), None)
        assert card.verdict.action == "WAIT"
        assert card.trading_plan is None

    def test_missing_score_counts_as_f(self):
        card = self._card(None, _levels())
        assert (card.setup_score.total, card.setup_score.grade) == (0, "F")
        assert card.verdict.action == "SKIP"

    def test_all_warnings(self):
        from core.analysis.models import ScoreResult
        card = self._card(ScoreResult(total=93, grade="A+"), _levels(rr=1.3),
                          volume_vs_avg=0.5, rsi=68.0, atr_pct=5.0)
        by_code = {w.code: w.severity for w in card.warnings}
        assert by_code == {"LOW_VOLUME": "medium", "RSI_ELEVATED": "low",
                           "HIGH_VOLATILITY": "medium", "LOW_RR": "high"}
        assert all(w.mitigation for w in card.warnings)

    def test_no_warnings_for_clean_setup(self):
        from core.analysis.models import ScoreResult
        card = self._card(ScoreResult(total=93, grade="A+"), _levels(),
                          volume_vs_avg=1.5, rsi=60.0, atr_pct=2.0)
        assert card.warnings == ()

    def test_strengths_and_watch_factors_copied(self):
        from core.analysis.models import IndicatorSnapshot, Setup
        from core.analysis.scoring import score_setup
        snap = IndicatorSnapshot(price=150.0, rsi=74.0, volume_vs_avg=3.0,
                                 weekly_change_pct=5.0, promoter_pledge_pct=0.0)
        result = score_setup(Setup("momentum", "m"), snap, _levels())
        card = self._card(result, _levels(), rsi=74.0)
        assert card.setup_score.strengths == tuple(result.strengths)
        assert card.setup_score.watch_factors == tuple(result.watch_factors)
        assert sum(b.points for b in card.setup_score.breakdown) == card.setup_score.total


class TestSerialisation:
    def test_json_round_trip(self):
        from core.analysis.models import AnalysisCard, ScoreResult
        card = TestFullCard()._card(ScoreResult(total=93, grade="A+"), _levels(rr=1.3),
                                    volume_vs_avg=0.5)
        restored = AnalysisCard.from_dict(json.loads(json.dumps(card.to_dict())))
        assert restored == card


class TestDeterminism:
    def test_same_inputs_same_card(self):
        from core.analysis.models import IndicatorSnapshot, ScoreResult
        first = TestFullCard()._card(ScoreResult(total=93, grade="A+"), _levels())
        second = TestFullCard()._card(ScoreResult(total=93, grade="A+"), _levels())
        assert first == second
        assert first.generated_at == GEN_AT
        snap = IndicatorSnapshot(price=80.0, sma200=90.0, ema20=85.0, ema50=88.0, rsi=40.0)
        assert _reject_card(snap) == _reject_card(snap)

    def test_generated_at_is_required(self):
        from core.analysis.cards import build_card
        from core.analysis.models import IndicatorSnapshot, Rejection
        with pytest.raises(TypeError):
            build_card(Rejection("weak_momentum", "weak"), IndicatorSnapshot(price=100.0),
                       instrument_id="TEST", freshness_key="2025-02-10")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
