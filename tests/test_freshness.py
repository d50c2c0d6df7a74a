"""
Tests for core.analysis.freshness: cache hits, key rollover, quick-reject
expiry and both card stores.
"""

from datetime import datetime, timezone
import pytest


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# Monday 2025-02-10 16:30 local: session closed, key "2025-02-10"
MON_AFTER_CLOSE = _utc(2025, 2, 10, 11, 0)
KEY = "2025-02-10"


def _full_card(key=KEY):
    from core.analysis.cards import build_card
    from core.analysis.models import IndicatorSnapshot, ScoreResult, Setup
    return build_card(Setup("momentum", "m"), IndicatorSnapshot(price=100.0), None,
                      ScoreResult(total=55, grade="B"), instrument_id="INFY",
                      freshness_key=key, generated_at=MON_AFTER_CLOSE.isoformat())


def _reject_card(key=KEY):
    from core.analysis.cards import build_card
    from core.analysis.models import IndicatorSnapshot, Rejection
    return build_card(Rejection("weak_momentum", "weak"), IndicatorSnapshot(price=100.0, rsi=30.0),
                      instrument_id="INFY", freshness_key=key,
                      generated_at=MON_AFTER_CLOSE.isoformat())


def _controller(store=None, expiry="next_open"):
    from core.analysis.freshness import FreshnessController, FreshnessPolicy, InMemoryCardStore
    return FreshnessController(store if store is not None else InMemoryCardStore(), FreshnessPolicy(expiry))


class TestFullCards:
    def test_hit_within_same_key(self):
        ctl = _controller()
        ctl.commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        # Tuesday mid-session: last completed session is still Monday
        hit = ctl.resolve("INFY", "swing", _utc(2025, 2, 11, 6, 0))
        assert hit is not None
        assert hit.valid_until is None
        assert hit.card.freshness_key == KEY

    def test_miss_after_next_close(self):
        ctl = _controller()
        ctl.commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        assert ctl.resolve("INFY", "swing", _utc(2025, 2, 11, 10, 30)) is None

    def test_keyed_by_instrument_and_kind(self):
        ctl = _controller()
        ctl.commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        assert ctl.resolve("TCS", "swing", MON_AFTER_CLOSE) is None
        assert ctl.resolve("INFY", "intraday", MON_AFTER_CLOSE) is None

    def test_history_keeps_earlier_keys(self):
        from core.analysis.freshness import InMemoryCardStore
        store = InMemoryCardStore()
        ctl = _controller(store)
        ctl.commit("INFY", "swing", "2025-02-07", _full_card("2025-02-07"), _utc(2025, 2, 7, 11, 0))
        ctl.commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        keys = [r.card.freshness_key for r in store.history("INFY", "swing")]
        assert keys == ["2025-02-07", KEY]

    def test_commit_overwrites_same_key(self):
        from core.analysis.freshness import InMemoryCardStore
        store = InMemoryCardStore()
        ctl = _controller(store)
        ctl.commit("INFY", "swing", KEY, _reject_card(), MON_AFTER_CLOSE)
        ctl.commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        assert len(store) == 1
        assert not ctl.resolve("INFY", "swing", MON_AFTER_CLOSE).card.is_quick_reject


class TestQuickRejectExpiry:
    def test_next_open_policy(self):
        ctl = _controller(expiry="next_open")
        rec = ctl.commit("INFY", "swing", KEY, _reject_card(), MON_AFTER_CLOSE)
        assert rec.valid_until == _utc(2025, 2, 11, 3, 45)
        assert ctl.resolve("INFY", "swing", _utc(2025, 2, 11, 3, 0)) is not None
        assert ctl.resolve("INFY", "swing", _utc(2025, 2, 11, 3, 45)) is None

    def test_session_close_policy(self):
        ctl = _controller(expiry="session_close")
        rec = ctl.commit("INFY", "swing", KEY, _reject_card(), MON_AFTER_CLOSE)
        assert rec.valid_until == _utc(2025, 2, 11, 10, 0)
        assert ctl.resolve("INFY", "swing", _utc(2025, 2, 11, 6, 0)) is not None

    def test_unknown_policy(self):
        from core.analysis.freshness import FreshnessPolicy
        with pytest.raises(ValueError):
            FreshnessPolicy("forever")


class TestJsonCardStore:
    def test_persists_across_instances(self, tmp_path):
        from core.analysis.freshness import JsonCardStore
        path = tmp_path / "cards.json"
        _controller(JsonCardStore(path)).commit("INFY", "swing", KEY, _reject_card(), MON_AFTER_CLOSE)

        hit = _controller(JsonCardStore(path)).resolve("INFY", "swing", _utc(2025, 2, 11, 3, 0))
        assert hit is not None
        assert hit.card == _reject_card()
        assert hit.valid_until == _utc(2025, 2, 11, 3, 45)

    def test_no_temp_files_left(self, tmp_path):
        from core.analysis.freshness import JsonCardStore
        store = JsonCardStore(tmp_path / "cards.json")
        _controller(store).commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        assert [p.name for p in tmp_path.iterdir()] == ["cards.json"]

    def test_corrupt_file_is_a_miss(self, tmp_path):
        from core.analysis.freshness import JsonCardStore
        path = tmp_path / "cards.json"
        path.write_text("{not json", encoding="utf-8")
        ctl = _controller(JsonCardStore(path))
        assert ctl.resolve("INFY", "swing", MON_AFTER_CLOSE) is None
        # a commit replaces the corrupt document
        ctl.commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        assert ctl.resolve("INFY", "swing", MON_AFTER_CLOSE) is not None

    def test_corrupt_record_is_a_miss(self, tmp_path):
        import json
        from core.analysis.freshness import JsonCardStore
        path = tmp_path / "cards.json"
        path.write_text(json.dumps({"records": {f"INFY|swing|{KEY}": {"card": {}}}}), encoding="utf-8")
        store = JsonCardStore(path)
        assert store.get(("INFY", "swing", KEY)) is None
        assert store.history("INFY", "swing") == []

    def test_creates_parent_directory(self, tmp_path):
        from core.analysis.freshness import JsonCardStore
        path = tmp_path / "nested" / "dir" / "cards.json"
        _controller(JsonCardStore(path)).commit("INFY", "swing", KEY, _full_card(), MON_AFTER_CLOSE)
        assert path.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
