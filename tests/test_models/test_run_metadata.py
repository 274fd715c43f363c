"""Tests for RunMetadata and UserFailure."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ml_windowing.models.meta import RunMetadata, UserFailure
from ml_windowing.utils.time_utils import utcnow


def _run(**overrides) -> RunMetadata:
    params = dict(
        run_slug="abc",
        pipeline_stage="windowing",
        config_snapshot={},
        started_at=utcnow(),
    )
    params.update(overrides)
    return RunMetadata(**params)


def test_defaults():
    run = _run()
    assert run.status == "started"
    assert run.rows_processed == 0
    assert run.failures == []


def test_unknown_stage_rejected():
    with pytest.raises(ValidationError):
        _run(pipeline_stage="train")


def test_unknown_status_rejected():
    with pytest.raises(ValidationError):
        _run(status="paused")


def test_run_is_mutable():
    run = _run()
    run.status = "success"
    run.failures.append(UserFailure(user_id="u1", error_type="SessionContractError", message="x"))
    assert run.status == "success"
    assert run.failures[0].user_id == "u1"


def test_user_failure_is_frozen():
    failure = UserFailure(user_id="u1", error_type="SessionContractError", message="x")
    with pytest.raises(ValidationError):
        failure.user_id = "u2"  # type: ignore[misc]
