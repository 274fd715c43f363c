"""
Run metadata — the audit record of one pipeline execution.

Every stage run records a complete ``config_snapshot`` so a run can be
reproduced by restoring that config and re-running on the same input.

``RunMetadata`` is NOT frozen: ``status``, the counters, ``failures`` and
``finished_at`` are filled in as the stage executes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

VALID_PIPELINE_STAGES = frozenset({"windowing"})
VALID_RUN_STATUSES = frozenset({"started", "success", "failed"})


class UserFailure(BaseModel):
    """A user whose session list was rejected; other users are unaffected."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    error_type: str
    message: str


class RunMetadata(BaseModel):
    """Pipeline execution audit record.

    Attributes:
        run_slug: UUID4 string uniquely identifying this run.
        pipeline_stage: Which stage produced this record.
        status: Current execution status.
        config_snapshot: ``AppConfig.model_dump()`` at run start.
        rows_processed: Windows written to the sink.
        users_processed: Users whose walk completed.
        users_failed: Users rejected with an input contract error.
        positive_windows: Windows carrying ``prediction_label=True``.
        failures: One entry per rejected user.
        output_path: Where the windows were written, if anywhere.
        error_message: Error description if ``status == "failed"``.
        started_at: UTC datetime when the run began.
        finished_at: UTC datetime when the run completed or failed.
    """

    model_config = ConfigDict(frozen=False)

    run_slug: str
    pipeline_stage: str
    status: str = "started"
    config_snapshot: dict[str, Any]
    rows_processed: int = 0
    users_processed: int = 0
    users_failed: int = 0
    positive_windows: int = 0
    failures: list[UserFailure] = Field(default_factory=list)
    output_path: Optional[str] = None
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @field_validator("pipeline_stage")
    @classmethod
    def validate_pipeline_stage(cls, v: str) -> str:
        if v not in VALID_PIPELINE_STAGES:
            raise ValueError(
                f"Unknown pipeline_stage '{v}'. Must be one of {sorted(VALID_PIPELINE_STAGES)}."
            )
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Unknown status '{v}'. Must be one of {sorted(VALID_RUN_STATUSES)}."
            )
        return v
