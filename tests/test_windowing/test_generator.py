"""
Tests for the per-user lookback-window walk.

What we test
------------
1. Scenarios — empty input, single session, label inside the lookahead,
   pre-data skip, early stop.
2. Invariants — ascending starts, exact window length, non-empty sessions,
   effective date, determinism.
3. Early-stop semantics — the first emitted window's label is recorded once.
4. Fixed placement — at most one window, anchored at the snapshot start.
5. Input contract — unsorted or foreign sessions raise before any output.
6. Agreement with a brute-force reference walk on generated histories.
"""

from __future__ import annotations

import random
from datetime import timedelta

import pytest
from helpers import D0, build_config, build_session

from ml_windowing.config import WindowingConfig
from ml_windowing.models.session import Session
from ml_windowing.windowing.errors import SessionContractError
from ml_windowing.windowing.generator import generate_windows
from ml_windowing.windowing.labels import first_instant_in_interval


def _walk(sessions: list[Session], config: WindowingConfig, user_id: str = "user-1"):
    return list(generate_windows(user_id, sessions, config))


def _days(td: timedelta) -> float:
    return td / timedelta(days=1)


# ── Scenarios ──────────────────────────────────────────────────────────────────

def test_no_sessions_yields_nothing():
    assert _walk([], build_config()) == []
    assert _walk([], build_config(placement="fixed", stop_on_first_positive_label=True)) == []


def test_single_session_inside_windows():
    session = build_session(timedelta(hours=12))
    windows = _walk([session], build_config())

    assert [w.start_time for w in windows] == [D0 - timedelta(days=1), D0]
    for w in windows:
        assert w.start_time <= session.visit_start_time
        assert session.last_hit_time <= w.end_time
        assert w.sessions == [session]
        assert w.prediction_label is False


def test_label_within_lookahead():
    sessions = [
        build_session(timedelta(hours=12)),
        build_session(timedelta(days=3), timedelta(0), positive=True),
    ]
    config = build_config()
    windows = _walk(sessions, config)
    label_instant = D0 + timedelta(days=3)

    assert [w.start_time for w in windows] == [D0 + timedelta(days=d) for d in (-1, 0, 1, 2, 3)]
    assert [w.prediction_label for w in windows] == [True, True, False, False, False]
    for w in windows:
        lo = w.effective_date + config.min_lookahead
        hi = w.effective_date + config.max_lookahead
        assert w.prediction_label == (lo < label_instant <= hi)


def test_pre_data_windows_are_skipped():
    session = build_session(timedelta(days=1), timedelta(hours=1))
    windows = _walk([session], build_config())

    assert [w.start_time for w in windows] == [D0, D0 + timedelta(days=1)]
    for w in windows:
        assert session.last_hit_time <= w.end_time


def test_early_stop_after_first_positive_label():
    sessions = [
        build_session(timedelta(hours=12)),
        build_session(timedelta(days=2, hours=12), positive_at=timedelta(days=2, hours=12)),
        build_session(timedelta(days=3, hours=12)),
    ]
    stopping = _walk(sessions, build_config(stop_on_first_positive_label=True))
    running = _walk(sessions, build_config(stop_on_first_positive_label=False))

    assert [w.start_time for w in stopping] == [D0 - timedelta(days=1), D0]
    assert all(w.prediction_label for w in stopping)
    assert len(running) == 5
    assert running[:2] == stopping


def test_early_stop_never_emits_window_past_first_label():
    label = D0 + timedelta(days=2, hours=12)
    sessions = [
        build_session(timedelta(hours=12)),
        build_session(timedelta(days=2, hours=12), positive_at=timedelta(days=2, hours=12)),
        build_session(timedelta(days=3, hours=12)),
    ]
    config = build_config(stop_on_first_positive_label=True, min_lookahead=timedelta(hours=6))
    windows = _walk(sessions, config)
    assert windows
    for w in windows[1:]:
        assert w.effective_date + config.min_lookahead <= label


def test_first_label_is_recorded_only_once():
    """A "nothing found" on the first window disables the early stop for the walk."""
    sessions = [
        build_session(timedelta(hours=12)),
        build_session(timedelta(days=2, hours=12), positive_at=timedelta(days=2, hours=12)),
    ]
    config = build_config(stop_on_first_positive_label=True, max_lookahead=timedelta(days=1))
    windows = _walk(sessions, config)

    assert [w.start_time for w in windows] == [D0 + timedelta(days=d) for d in (-1, 0, 1, 2)]
    assert [w.prediction_label for w in windows] == [False, True, False, False]


def test_walk_ends_when_sessions_are_exhausted():
    sessions = [build_session(timedelta(days=-10))]
    assert _walk(sessions, build_config()) == []


def test_windows_without_contained_sessions_are_not_emitted():
    # Long session straddles every candidate after the first.
    sessions = [
        build_session(timedelta(hours=1)),
        build_session(timedelta(days=1, hours=12), timedelta(days=3)),
    ]
    windows = _walk(sessions, build_config())
    assert windows
    for w in windows:
        assert w.sessions
    assert all(w.start_time <= D0 for w in windows)


def test_lookback_gap_shifts_effective_date():
    config = build_config(lookback_gap=timedelta(hours=12))
    windows = _walk([build_session(timedelta(hours=12))], config)
    assert windows
    for w in windows:
        assert w.effective_date == w.end_time + timedelta(hours=12)


# ── Invariants ─────────────────────────────────────────────────────────────────

def test_invariants_hold_on_busy_history():
    sessions = [
        build_session(timedelta(hours=h), timedelta(minutes=40), positive=(h % 29 == 0))
        for h in range(3, 24 * 5, 7)
    ]
    config = build_config(slide_duration=timedelta(hours=6))
    windows = _walk(sessions, config)

    assert windows
    starts = [w.start_time for w in windows]
    assert starts == sorted(set(starts))
    for w in windows:
        assert w.end_time - w.start_time == config.window_duration
        assert w.effective_date == w.end_time + config.lookback_gap
        assert w.first_activity_time == sessions[0].visit_start_time
        assert w.user_id == "user-1"
        assert w.sessions
        for s in w.sessions:
            assert w.start_time <= s.visit_start_time
            assert s.last_hit_time <= w.end_time


def test_generation_is_deterministic():
    sessions = [build_session(timedelta(hours=h), positive=(h == 50)) for h in range(2, 100, 9)]
    config = build_config(slide_duration=timedelta(hours=8))
    assert _walk(sessions, config) == _walk(sessions, config)


def test_generator_is_lazy():
    sessions = [build_session(timedelta(hours=12))]
    it = generate_windows("user-1", sessions, build_config())
    first = next(it)
    assert first.start_time == D0 - timedelta(days=1)


# ── Fixed placement ────────────────────────────────────────────────────────────

def test_fixed_placement_emits_anchored_window():
    session = build_session(timedelta(days=-1))
    windows = _walk([session], build_config(placement="fixed"))

    assert len(windows) == 1
    w = windows[0]
    assert w.start_time == D0 - timedelta(days=2)
    assert w.end_time == D0
    assert w.effective_date == D0
    assert w.sessions == [session]


def test_fixed_placement_skips_user_without_history():
    session = build_session(timedelta(hours=3))
    assert _walk([session], build_config(placement="fixed")) == []


# ── Input contract ─────────────────────────────────────────────────────────────

def test_unsorted_sessions_raise_before_output():
    sessions = [build_session(timedelta(days=1)), build_session(timedelta(hours=1))]
    it = generate_windows("user-1", sessions, build_config())
    with pytest.raises(SessionContractError) as exc_info:
        next(it)
    assert exc_info.value.user_id == "user-1"
    assert "not sorted" in exc_info.value.reason


def test_foreign_session_raises():
    sessions = [build_session(timedelta(hours=1), user_id="someone-else")]
    with pytest.raises(SessionContractError):
        _walk(sessions, build_config())


def test_contract_error_is_a_value_error():
    assert issubclass(SessionContractError, ValueError)


# ── Reference comparison ───────────────────────────────────────────────────────

def _reference_walk(user_id: str, sessions: list[Session], config: WindowingConfig) -> list[tuple]:
    """Quadratic restatement of the walk, used as an oracle."""
    labels = sorted(
        s.positive_label_instant for s in sessions
        if s.positive_label_instant is not None
        and config.snapshot_start_date <= s.positive_label_instant <= config.snapshot_end_date
    )
    out: list[tuple] = []
    if not sessions:
        return out
    recorded = False
    first_label = None
    start = config.snapshot_start_date - config.lookback_gap - config.window_duration
    while start + config.window_duration + config.lookback_gap <= config.snapshot_end_date:
        end = start + config.window_duration
        eff = end + config.lookback_gap
        if config.stop_on_first_positive_label and first_label is not None \
                and first_label < eff + config.min_lookahead:
            break
        remaining = [i for i, s in enumerate(sessions) if s.visit_start_time >= start]
        if not remaining:
            break
        if not (remaining[0] == 0 and sessions[0].last_hit_time > end):
            contained = [
                s.session_id for s in sessions
                if s.visit_start_time >= start and s.last_hit_time <= end
            ]
            if contained:
                label = first_instant_in_interval(
                    labels, eff + config.min_lookahead, eff + config.max_lookahead
                )
                if not recorded:
                    first_label, recorded = label, True
                out.append((start, end, eff, tuple(contained), label is not None))
        start += config.slide_duration
    return out


@pytest.mark.parametrize("seed", range(12))
def test_matches_reference_walk(seed):
    rng = random.Random(seed)
    offset = timedelta(hours=rng.randint(-72, 24))
    sessions = []
    for i in range(rng.randint(1, 25)):
        offset += timedelta(hours=rng.randint(1, 30))
        sessions.append(build_session(
            offset,
            timedelta(minutes=rng.randint(0, 600)),
            session_id=f"s{i}",
            positive=rng.random() < 0.2,
        ))
    config = build_config(
        snapshot_end_date=D0 + timedelta(days=rng.randint(2, 8)),
        lookback_gap=timedelta(hours=rng.choice([0, 6, 24])),
        window_duration=timedelta(hours=rng.choice([12, 24, 48])),
        slide_duration=timedelta(hours=rng.choice([6, 12, 24])),
        min_lookahead=timedelta(hours=rng.choice([0, 12])),
        max_lookahead=timedelta(days=rng.choice([1, 3])),
        stop_on_first_positive_label=rng.random() < 0.5,
    )
    got = [
        (w.start_time, w.end_time, w.effective_date,
         tuple(s.session_id for s in w.sessions), w.prediction_label)
        for w in _walk(sessions, config)
    ]
    assert got == _reference_walk("user-1", sessions, config)
