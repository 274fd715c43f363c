"""
Session model — one contiguous block of user activity.

Sessions arrive from the upstream extraction layer already grouped per user.
The windowing core only reads ``visit_start_time``, ``last_hit_time`` and the
positive-label signal; everything else about the visit (pageviews, traffic
source, device...) travels along in ``facts`` for downstream feature building.

Positive labels
---------------
Whether a session counts as a conversion is decided upstream and recorded in
``has_positive_label``. When the conversion has its own timestamp it is carried
in ``positive_label_time``; otherwise the session's ``last_hit_time`` is used as
the qualifying instant.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ml_windowing.utils.time_utils import ensure_utc


class Session(BaseModel):
    """A single user visit.

    Attributes:
        session_id: Identifier unique within one user's history.
        user_id: Opaque user key the session belongs to.
        visit_start_time: First hit of the visit (UTC).
        last_hit_time: Last hit of the visit (UTC); never before
            ``visit_start_time``.
        has_positive_label: ``True`` if the visit contains a qualifying
            positive event (purchase, sign-up...).
        positive_label_time: Instant of that event, if known.
        facts: Free-form domain signals copied through to the windows.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    user_id: str
    visit_start_time: datetime
    last_hit_time: datetime
    has_positive_label: bool = False
    positive_label_time: Optional[datetime] = None
    facts: dict[str, Any] = Field(default_factory=dict)

    @field_validator("visit_start_time", "last_hit_time", "positive_label_time")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else ensure_utc(v)

    @model_validator(mode="after")
    def validate_time_ordering(self) -> "Session":
        """Ensure the visit does not end before it starts."""
        if self.last_hit_time < self.visit_start_time:
            raise ValueError(
                f"last_hit_time ({self.last_hit_time}) must be >= "
                f"visit_start_time ({self.visit_start_time}) for session '{self.session_id}'."
            )
        return self

    @property
    def positive_label_instant(self) -> Optional[datetime]:
        """The instant of the qualifying event, or ``None`` if there is none."""
        if not self.has_positive_label:
            return None
        if self.positive_label_time is not None:
            return self.positive_label_time
        return self.last_hit_time
