"""
LookbackWindow — one labeled training example.

A window is a fixed-length slice ``[start_time, end_time]`` of a user's
history together with the sessions fully contained in it. It is "observed" at
``effective_date`` (``end_time`` plus the lookback gap) and labeled by looking
for a positive event in ``(effective_date + min_lookahead,
effective_date + max_lookahead]``.

Windows are built once by the generator and never mutated afterwards.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from ml_windowing.models.session import Session


class LookbackWindow(BaseModel):
    """A labeled lookback window for a single user.

    Attributes:
        user_id: Key of the user the window belongs to.
        start_time: Inclusive start of the window.
        end_time: Inclusive end of the window.
        effective_date: Decision instant (``end_time + lookback_gap``).
        first_activity_time: Start of the user's earliest known session;
            identical for every window of the user.
        sessions: Sessions fully inside ``[start_time, end_time]``, in order.
        prediction_label: ``True`` if a positive event falls in the
            lookahead interval.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    start_time: datetime
    end_time: datetime
    effective_date: datetime
    first_activity_time: datetime
    sessions: list[Session]
    prediction_label: bool

    @model_validator(mode="after")
    def validate_bounds(self) -> "LookbackWindow":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must be after start_time ({self.start_time})."
            )
        if self.effective_date < self.end_time:
            raise ValueError(
                f"effective_date ({self.effective_date}) must be >= end_time ({self.end_time})."
            )
        return self

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    def to_record(self) -> dict[str, Any]:
        """Flatten the window into a JSON/Parquet friendly dict.

        Sessions are kept as a JSON string so that arbitrary ``facts`` do not
        need a fixed columnar schema.
        """
        return {
            "user_id":             self.user_id,
            "start_time":          self.start_time,
            "end_time":            self.end_time,
            "effective_date":      self.effective_date,
            "first_activity_time": self.first_activity_time,
            "prediction_label":    self.prediction_label,
            "session_count":       self.session_count,
            "session_ids":         [s.session_id for s in self.sessions],
            "sessions_json":       json.dumps(
                [s.model_dump(mode="json") for s in self.sessions]
            ),
        }
