from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sentinel.models import PingResult, Transition
from sentinel.storage import MemoryPingStore
from sentinel.transitions import TransitionTracker, classify_transition


T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _ping(i: int, ok: bool, monitor_id: str = "m") -> PingResult:
    return PingResult(
        monitor_id=monitor_id,
        timestamp=T0 + timedelta(minutes=i),
        status_code=200 if ok else 500,
        response_time_ms=10.0,
        success=ok,
    )


def _replay(outcomes: list[bool]) -> list[Transition]:
    tracker = TransitionTracker(MemoryPingStore())
    return [tracker.record(_ping(i, ok)).transition for i, ok in enumerate(outcomes)]


def test_decision_table() -> None:
    up = _ping(0, True)
    down = _ping(0, False)
    assert classify_transition(None, True) is Transition.NONE
    assert classify_transition(None, False) is Transition.BECAME_DOWN
    assert classify_transition(up, True) is Transition.NONE
    assert classify_transition(up, False) is Transition.BECAME_DOWN
    assert classify_transition(down, False) is Transition.NONE
    assert classify_transition(down, True) is Transition.BECAME_UP


def test_first_successful_probe_is_not_a_transition() -> None:
    assert _replay([True]) == [Transition.NONE]


def test_success_success_fail_goes_down_once_at_third_probe() -> None:
    assert _replay([True, True, False]) == [Transition.NONE, Transition.NONE, Transition.BECAME_DOWN]


def test_consecutive_failures_alert_once_per_edge() -> None:
    transitions = _replay([True, False, False, False])
    assert transitions.count(Transition.BECAME_DOWN) == 1
    assert transitions[1] is Transition.BECAME_DOWN


def test_fail_fail_success_recovers_with_down_since_of_latest_failure() -> None:
    tracker = TransitionTracker(MemoryPingStore())
    events = [tracker.record(_ping(i, ok)) for i, ok in enumerate([False, False, True])]

    assert [e.transition for e in events[1:]] == [Transition.NONE, Transition.BECAME_UP]
    recovery = events[2]
    assert recovery.down_since == T0 + timedelta(minutes=1)
    assert recovery.result.timestamp == T0 + timedelta(minutes=2)


def test_fail_success_fail_fires_both_edges() -> None:
    transitions = _replay([False, True, False])
    assert transitions[1:] == [Transition.BECAME_UP, Transition.BECAME_DOWN]


def test_classify_reads_history_without_appending() -> None:
    store = MemoryPingStore()
    tracker = TransitionTracker(store)
    store.append(_ping(0, True))

    new = _ping(1, False)
    assert tracker.classify("m", new) is Transition.BECAME_DOWN
    assert store.most_recent("m") == _ping(0, True)

    store.append(new)
    assert tracker.classify("m", _ping(2, False)) is Transition.NONE


def test_every_result_is_stored_regardless_of_transition() -> None:
    store = MemoryPingStore()
    tracker = TransitionTracker(store)
    for i, ok in enumerate([True, True, False, False, True]):
        tracker.record(_ping(i, ok))
    assert len(store.query("m", limit=None)) == 5


def test_monitors_are_tracked_independently() -> None:
    tracker = TransitionTracker(MemoryPingStore())
    assert tracker.record(_ping(0, False, "a")).transition is Transition.BECAME_DOWN
    assert tracker.record(_ping(0, True, "b")).transition is Transition.NONE
    assert tracker.record(_ping(1, True, "a")).transition is Transition.BECAME_UP
    assert tracker.record(_ping(1, False, "b")).transition is Transition.BECAME_DOWN


@pytest.mark.parametrize("outcomes", [[True, False, True, False, True], [False] * 4 + [True] * 4])
def test_transitions_alternate_and_match_state_changes(outcomes: list[bool]) -> None:
    transitions = [t for t in _replay(outcomes) if t is not Transition.NONE]
    for a, b in zip(transitions, transitions[1:]):
        assert a is not b
