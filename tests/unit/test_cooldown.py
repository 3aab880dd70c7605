"""Tests for CooldownTracker window semantics."""

from __future__ import annotations

from autoheal.detector.cooldown import CooldownTracker


class _FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_tracker(window: float = 300.0) -> tuple[CooldownTracker, _FakeClock]:
    clock = _FakeClock()
    return CooldownTracker(window_seconds=window, clock=clock), clock


class TestIsActive:
    def test_unknown_key_is_inactive(self) -> None:
        tracker, _ = _make_tracker()
        assert tracker.is_active("pod:default/api:high-cpu") is False
        assert tracker.remaining("pod:default/api:high-cpu") == 0.0

    def test_active_immediately_after_set(self) -> None:
        tracker, _ = _make_tracker()
        tracker.set("k")
        assert tracker.is_active("k") is True
        assert tracker.remaining("k") == 300.0

    def test_active_just_before_window_ends(self) -> None:
        tracker, clock = _make_tracker()
        tracker.set("k")
        clock.advance(299.9)
        assert tracker.is_active("k") is True

    def test_inactive_once_window_elapsed(self) -> None:
        tracker, clock = _make_tracker()
        tracker.set("k")
        clock.advance(300.0)
        assert tracker.is_active("k") is False

    def test_keys_are_independent(self) -> None:
        tracker, _ = _make_tracker()
        tracker.set("a")
        assert tracker.is_active("b") is False

    def test_zero_window_never_suppresses(self) -> None:
        tracker, _ = _make_tracker(window=0)
        tracker.set("k")
        assert tracker.is_active("k") is False


class TestTryAcquire:
    def test_first_acquire_wins_second_loses(self) -> None:
        tracker, _ = _make_tracker()
        assert tracker.try_acquire("k") is True
        assert tracker.try_acquire("k") is False

    def test_reacquire_after_expiry(self) -> None:
        tracker, clock = _make_tracker(window=60)
        assert tracker.try_acquire("k") is True
        clock.advance(61)
        assert tracker.try_acquire("k") is True
        assert tracker.remaining("k") == 60.0

    def test_clear_resets_all_keys(self) -> None:
        tracker, _ = _make_tracker()
        tracker.set("a")
        tracker.set("b")
        tracker.clear()
        assert tracker.try_acquire("a") is True
        assert tracker.is_active("b") is False


class TestEviction:
    def test_expired_keys_are_dropped_on_write(self) -> None:
        tracker, clock = _make_tracker(window=60)
        for i in range(50):
            tracker.set(f"pod:default/api-{i}:crash-loop")
        assert len(tracker) == 50

        clock.advance(61)
        assert tracker.try_acquire("pod:default/api-new:crash-loop") is True

        assert len(tracker) == 1

    def test_live_keys_survive_eviction(self) -> None:
        tracker, clock = _make_tracker(window=60)
        tracker.set("old")
        clock.advance(30)
        tracker.set("young")
        clock.advance(31)

        tracker.set("newest")

        assert len(tracker) == 2
        assert tracker.is_active("young") is True
        assert tracker.is_active("old") is False
