from __future__ import annotations

from warden.detection.heuristics import MessageRateTracker


def test_rate_counts_within_window() -> None:
    tracker = MessageRateTracker()
    counts = [tracker.record(1, 42, 10, now=float(t)) for t in (0, 1, 2, 15)]
    # The first three fall out of the window by t=15.
    assert counts == [1, 2, 3, 1]


def test_tracker_stays_within_cap_when_every_actor_is_active() -> None:
    tracker = MessageRateTracker(max_keys=3)
    for user_id in range(10):
        tracker.record(1, user_id, 60, now=float(user_id))

    assert len(tracker) == 3
    # The least recently active actors went first.
    assert tracker.record(1, 9, 60, now=10.0) == 2
    assert tracker.record(1, 0, 60, now=11.0) == 1


def test_stale_actors_are_pruned_before_active_ones() -> None:
    tracker = MessageRateTracker(max_keys=2)
    tracker.record(1, 1, 10, now=0.0)
    tracker.record(1, 2, 10, now=100.0)
    tracker.record(1, 3, 10, now=101.0)

    assert len(tracker) == 2
    assert tracker.record(1, 2, 10, now=102.0) == 2
