"""
Tests for core.analysis.scoring: rubric totals, grade table, tags.
"""

import numpy as np
import pytest


def _levels(rr: float = 2.5, target_2: float = 175.0):
    from core.analysis.models import EntryZone, SwingLevels
    return SwingLevels(
        entry=150.0, entry_zone=EntryZone(150.0, 151.5), stop_loss=145.0,
        target_1=160.0, target_1_basis="midpoint", target_2=target_2,
        target_2_basis="weekly_r1", target_3=None, risk_reward=rr,
        risk_percent=3.33, reward_percent=16.67, archetype="breakout",
    )


def _momentum_snap(**overrides):
    from core.analysis.models import IndicatorSnapshot
    base = dict(price=150.0, ema20=145.0, ema50=140.0, sma200=120.0, rsi=58.0,
                weekly_rsi=62.0, high_52w=152.0, volume_vs_avg=2.0, atr_pct=2.5,
                weekly_change_pct=5.0, promoter_pledge_pct=0.0, institutional_buying=True)
    base.update(overrides)
    return IndicatorSnapshot(**base)


def _pullback_snap(**overrides):
    from core.analysis.models import IndicatorSnapshot
    base = dict(price=100.0, ema20=99.7, ema50=95.0, sma200=90.0, rsi=50.0,
                volume_vs_avg=0.6, atr_pct=2.5, return_1m=6.0, benchmark_return_1m=1.0)
    base.update(overrides)
    return IndicatorSnapshot(**base)


class TestGradeTable:
    @pytest.mark.parametrize("total,grade", [
        (100, "A+"), (80, "A+"), (79.9, "A"), (70, "A"), (60, "B+"),
        (50, "B"), (40, "C"), (30, "D"), (29.9, "F"), (0, "F"),
    ])
    def test_boundaries(self, total, grade):
        from core.analysis.scoring import grade_for
        assert grade_for(total) == grade

    def test_monotonic(self):
        from core.analysis.scoring import grade_for
        order = ["F", "D", "C", "B", "B+", "A", "A+"]
        ranks = [order.index(grade_for(t)) for t in np.linspace(0, 100, 401)]
        assert all(a <= b for a, b in zip(ranks, ranks[1:]))


class TestScore:
    def test_unknown_rubric(self):
        from core.analysis.scoring import score
        with pytest.raises(ValueError):
            score([], "value")

    def test_mismatched_factors(self):
        from core.analysis.models import ScoreFactor
        from core.analysis.scoring import score
        with pytest.raises(ValueError):
            score([ScoreFactor("Volume Conviction", 2.0, 16, 20, "x")], "momentum")

    def test_points_clamped_to_weight(self):
        from core.analysis.models import ScoreFactor
        from core.analysis.scoring import score
        import config as cfg
        factors = [ScoreFactor(name, None, 999, 0, name) for name in cfg.MOMENTUM_RUBRIC_WEIGHTS]
        result = score(factors, "momentum")
        assert result.total == 100
        assert all(b.points == b.max for b in result.breakdown)

    def test_tags(self):
        from core.analysis.scoring import tag_for
        assert tag_for(14, 20) == "strength"
        assert tag_for(10, 20) == "neutral"
        assert tag_for(7, 20) == "watch"
        assert tag_for(0, 0) == "neutral"


class TestMomentumRubric:
    def test_strong_setup(self):
        from core.analysis.models import Setup
        from core.analysis.scoring import score_setup
        result = score_setup(Setup("breakout", "m"), _momentum_snap(), _levels())
        assert result.rubric == "momentum"
        points = {b.factor: b.points for b in result.breakdown}
        assert points == {
            "Volume Conviction": 16, "Risk:Reward": 17, "RSI Position": 15,
            "Weekly Move": 15, "Upside to Target": 15,
            "Promoter & Institutional": 10, "Price Accessibility": 5,
        }
        assert result.total == 93
        assert result.grade == "A+"

    def test_missing_levels_score_zero_for_plan_factors(self):
        from core.analysis.models import Setup
        from core.analysis.scoring import score_setup
        result = score_setup(Setup("momentum", "m"), _momentum_snap(), None)
        points = {b.factor: b.points for b in result.breakdown}
        assert points["Risk:Reward"] == 0
        assert points["Upside to Target"] == 0
        assert result.total == 61
        assert result.grade == "B+"

    def test_every_factor_max_matches_weight(self):
        from core.analysis.models import Setup
        from core.analysis.scoring import score_setup
        import config as cfg
        result = score_setup(Setup("momentum", "m"), _momentum_snap(), _levels())
        for b in result.breakdown:
            assert b.max == cfg.MOMENTUM_RUBRIC_WEIGHTS[b.factor]

    def test_overbought_rsi_is_watch_factor(self):
        from core.analysis.models import Setup
        from core.analysis.scoring import score_setup
        result = score_setup(Setup("momentum", "m"), _momentum_snap(rsi=74.0), _levels())
        rsi = next(b for b in result.breakdown if b.factor == "RSI Position")
        assert rsi.points == 0
        assert rsi.tag == "watch"
        assert rsi.reason in result.watch_factors


class TestPullbackRubric:
    def test_ideal_pullback(self):
        from core.analysis.models import Setup
        from core.analysis.scoring import score_setup
        result = score_setup(Setup("pullback", "p"), _pullback_snap(), _levels(rr=2.5))
        assert result.rubric == "pullback"
        points = {b.factor: b.points for b in result.breakdown}
        assert points == {
            "EMA20 Proximity": 25, "Volume Decline Quality": 20, "RSI Cooling": 15,
            "Trend Structure": 15, "Risk:Reward": 15, "Relative Strength": 4,
            "ATR% Tradability": 5,
        }
        assert result.total == 99

    def test_heavy_volume_penalised(self):
        from core.analysis.models import Setup
        from core.analysis.scoring import score_setup
        quiet = score_setup(Setup("pullback", "p"), _pullback_snap(), _levels())
        loud = score_setup(Setup("pullback", "p"), _pullback_snap(volume_vs_avg=1.6), _levels())
        assert loud.total == quiet.total - 20


class TestScoreBounds:
    @pytest.mark.parametrize("seed", range(5))
    def test_breakdown_sums_to_total(self, seed):
        from core.analysis.models import IndicatorSnapshot, Setup
        from core.analysis.scoring import score_setup
        rng = np.random.RandomState(seed)
        snap = IndicatorSnapshot(
            price=float(rng.uniform(50, 3000)), ema20=float(rng.uniform(50, 3000)),
            ema50=float(rng.uniform(50, 3000)), sma200=float(rng.uniform(50, 3000)),
            rsi=float(rng.uniform(20, 80)), volume_vs_avg=float(rng.uniform(0.2, 4)),
            atr_pct=float(rng.uniform(0.5, 7)), weekly_change_pct=float(rng.uniform(-5, 15)),
            promoter_pledge_pct=float(rng.uniform(0, 40)),
        )
        for scan in ("momentum", "pullback"):
            result = score_setup(Setup(scan, "x"), snap, _levels(rr=float(rng.uniform(0.5, 4))))
            assert sum(b.points for b in result.breakdown) == result.total
            assert 0 <= result.total <= 100


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
