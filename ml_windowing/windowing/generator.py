"""
Lookback-window generation for one user.

Walk
----
Given one user's sessions (sorted by ``visit_start_time``) and a
``WindowingConfig``, ``generate_windows()`` visits every candidate window start
produced by the placement strategy, in ascending order. For each candidate::

    effective_date = window_start + window_duration + lookback_gap

    1. early stop   the label found on the first emitted window lies before
                    this candidate's lookahead start → end the walk
    2. advance      move the session pointer past sessions starting before
                    window_start (the pointer never rewinds)
    3. exhausted    no session left → end the walk
    4. pre-data     the user's very first session ends after this window →
                    skip (the window predates the user's recorded history)
    5. emit         collect contained sessions; skip if none; label; yield

Because the pointer only moves forward and the containment scan stops at the
first session starting after the window end, a user costs
O(sessions + windows) rather than O(sessions × windows).

Boundaries
----------
- A session is contained when ``visit_start_time >= start_time`` and
  ``last_hit_time <= end_time``.
- The label interval is ``(effective_date + min_lookahead,
  effective_date + max_lookahead]``.

Early stop
----------
With ``stop_on_first_positive_label`` the label instant of the FIRST emitted
window is recorded (including "nothing found"), exactly once. Once recorded as
an actual instant ``L``, the walk ends at the first candidate with
``L < effective_date + min_lookahead``: later windows would only repeat the
same future conversion as their label.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator, Optional, Sequence

from ml_windowing.config import WindowingConfig
from ml_windowing.models.session import Session
from ml_windowing.models.window import LookbackWindow
from ml_windowing.windowing.errors import SessionContractError
from ml_windowing.windowing.labels import (
    collect_positive_label_times,
    first_instant_in_interval,
)
from ml_windowing.windowing.placement import (
    WindowPlacement,
    candidate_starts,
    placement_for,
)

logger = logging.getLogger(__name__)


def validate_sessions(user_id: str, sessions: Sequence[Session]) -> None:
    """Check the per-user input contract.

    Raises:
        SessionContractError: If a session belongs to another user or the
            list is not sorted ascending by ``visit_start_time``.
    """
    previous: Optional[Session] = None
    for i, session in enumerate(sessions):
        if session.user_id != user_id:
            raise SessionContractError(
                user_id,
                f"session '{session.session_id}' at position {i} belongs to "
                f"user '{session.user_id}'.",
            )
        if previous is not None and session.visit_start_time < previous.visit_start_time:
            raise SessionContractError(
                user_id,
                f"sessions not sorted by visit_start_time: '{session.session_id}' "
                f"({session.visit_start_time}) follows '{previous.session_id}' "
                f"({previous.visit_start_time}).",
            )
        previous = session


def generate_windows(
    user_id: str,
    sessions: Sequence[Session],
    config: WindowingConfig,
    placement: Optional[WindowPlacement] = None,
) -> Iterator[LookbackWindow]:
    """Yield the labeled lookback windows of one user, in ascending start order.

    The session list is validated before the first window is produced, so a
    contract violation never leaves a partially emitted user behind.

    Args:
        user_id:   The user key; copied into every window.
        sessions:  The user's sessions sorted ascending by ``visit_start_time``.
        config:    Resolved windowing parameters.
        placement: Placement strategy; defaults to ``placement_for(config)``.

    Yields:
        ``LookbackWindow`` objects, each with at least one session.

    Raises:
        SessionContractError: If ``sessions`` breaks the input contract.
    """
    if not sessions:
        return
    validate_sessions(user_id, sessions)

    if placement is None:
        placement = placement_for(config)

    positive_label_times = collect_positive_label_times(
        sessions, config.snapshot_start_date, config.snapshot_end_date
    )
    first_activity_time = sessions[0].visit_start_time
    n = len(sessions)
    idx = 0

    first_label_recorded = False
    first_label_instant: Optional[datetime] = None

    for window_start in candidate_starts(config, placement):
        window_end = window_start + config.window_duration
        effective_date = window_end + config.lookback_gap
        lookahead_start = effective_date + config.min_lookahead

        if (
            config.stop_on_first_positive_label
            and first_label_instant is not None
            and first_label_instant < lookahead_start
        ):
            logger.debug(
                "User %s: stopping at %s, positive label %s already reached",
                user_id, window_start, first_label_instant,
            )
            return

        while idx < n and sessions[idx].visit_start_time < window_start:
            idx += 1
        if idx >= n:
            return

        if idx == 0 and sessions[0].last_hit_time > window_end:
            continue

        contained = _contained_sessions(sessions, idx, window_start, window_end)
        if not contained:
            continue

        label_instant = first_instant_in_interval(
            positive_label_times,
            lookahead_start,
            effective_date + config.max_lookahead,
        )
        if not first_label_recorded:
            first_label_instant = label_instant
            first_label_recorded = True

        yield LookbackWindow(
            user_id=user_id,
            start_time=window_start,
            end_time=window_end,
            effective_date=effective_date,
            first_activity_time=first_activity_time,
            sessions=contained,
            prediction_label=label_instant is not None,
        )


def _contained_sessions(
    sessions: Sequence[Session],
    start_idx: int,
    window_start: datetime,
    window_end: datetime,
) -> list[Session]:
    """Sessions from ``start_idx`` on that lie fully inside the window."""
    contained: list[Session] = []
    for i in range(start_idx, len(sessions)):
        session = sessions[i]
        if session.visit_start_time > window_end:
            break
        if session.visit_start_time >= window_start and session.last_hit_time <= window_end:
            contained.append(session)
    return contained
