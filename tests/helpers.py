"""
Builders shared by the test modules.

``tests/`` is on the pytest ``pythonpath``, so modules import these directly::

    from helpers import D0, build_config, build_session

Provides:
  - ``D0``: a fixed UTC midnight used as the time origin in scenarios.
  - ``build_session``: ``Session`` factory with times relative to ``D0``.
  - ``build_config``: ``WindowingConfig`` with small, day-scale defaults
    (2d windows sliding by 1d over a 5-day snapshot).
  - ``session_record``: a raw export record (what ``load_sessions`` reads).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ml_windowing.config import WindowingConfig
from ml_windowing.models.session import Session

D0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def build_session(
    start: timedelta,
    duration: timedelta = timedelta(hours=1),
    *,
    session_id: Optional[str] = None,
    user_id: str = "user-1",
    positive: bool = False,
    positive_at: Optional[timedelta] = None,
    facts: Optional[dict[str, Any]] = None,
) -> Session:
    """Session starting ``start`` after ``D0`` and lasting ``duration``."""
    visit_start = D0 + start
    return Session(
        session_id=session_id or f"s-{int(start.total_seconds())}",
        user_id=user_id,
        visit_start_time=visit_start,
        last_hit_time=visit_start + duration,
        has_positive_label=positive or positive_at is not None,
        positive_label_time=D0 + positive_at if positive_at is not None else None,
        facts=facts or {},
    )


def build_config(**overrides: Any) -> WindowingConfig:
    """``WindowingConfig`` with day-scale defaults, overridable per test."""
    params: dict[str, Any] = {
        "placement": "sliding",
        "snapshot_start_date": D0,
        "snapshot_end_date": D0 + timedelta(days=5),
        "lookback_gap": timedelta(0),
        "window_duration": timedelta(days=2),
        "slide_duration": timedelta(days=1),
        "min_lookahead": timedelta(0),
        "max_lookahead": timedelta(days=5),
        "stop_on_first_positive_label": False,
    }
    params.update(overrides)
    return WindowingConfig(**params)



def session_record(
    session_id: str,
    user_id: str,
    start_h: float,
    end_h: float,
    **extra: Any,
) -> dict[str, Any]:
    """Export record for a session spanning ``start_h``..``end_h`` hours after ``D0``."""
    return {
        "session_id": session_id,
        "user_id": user_id,
        "visit_start_time": (D0 + timedelta(hours=start_h)).isoformat(),
        "last_hit_time": (D0 + timedelta(hours=end_h)).isoformat(),
        **extra,
    }
