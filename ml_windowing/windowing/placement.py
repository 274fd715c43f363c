"""
Window placement strategies.

A placement decides where candidate windows start. Both strategies anchor the
first candidate so that its effective date falls exactly on the snapshot start:

    first_start = snapshot_start_date - lookback_gap - window_duration

``SlidingPlacement`` then steps forward by ``slide_duration``;
``FixedPlacement`` offers that single candidate only. The generator loop is the
same for both.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterator, Optional, Protocol

from ml_windowing.config import WindowingConfig


class WindowPlacement(Protocol):
    """Produces candidate window start times."""

    def first_start(self, config: WindowingConfig) -> datetime:
        ...

    def next_start(self, previous: datetime) -> Optional[datetime]:
        """Start after ``previous``, or ``None`` when placement is exhausted."""
        ...


def anchored_start(config: WindowingConfig) -> datetime:
    """Start of the window whose effective date is the snapshot start."""
    return config.snapshot_start_date - config.lookback_gap - config.window_duration


class FixedPlacement:
    """Exactly one candidate window, anchored at the snapshot start."""

    def first_start(self, config: WindowingConfig) -> datetime:
        return anchored_start(config)

    def next_start(self, previous: datetime) -> Optional[datetime]:
        return None


class SlidingPlacement:
    """Candidate windows every ``slide_duration``, from the anchored start."""

    def __init__(self, slide_duration: timedelta) -> None:
        if slide_duration <= timedelta(0):
            raise ValueError(f"slide_duration must be positive, got {slide_duration}.")
        self.slide_duration = slide_duration

    def first_start(self, config: WindowingConfig) -> datetime:
        return anchored_start(config)

    def next_start(self, previous: datetime) -> Optional[datetime]:
        return previous + self.slide_duration


def placement_for(config: WindowingConfig) -> WindowPlacement:
    """Build the placement strategy named by ``config.placement``."""
    if config.placement == "fixed":
        return FixedPlacement()
    # slide_duration is guaranteed non-None by WindowingConfig validation.
    return SlidingPlacement(config.slide_duration)  # type: ignore[arg-type]


def candidate_starts(
    config: WindowingConfig,
    placement: WindowPlacement,
) -> Iterator[datetime]:
    """Yield candidate window starts in ascending order.

    Stops once a candidate's effective date would pass ``snapshot_end_date``
    or the placement is exhausted.
    """
    horizon = config.window_duration + config.lookback_gap
    start: Optional[datetime] = placement.first_start(config)
    while start is not None and start + horizon <= config.snapshot_end_date:
        yield start
        start = placement.next_start(start)
