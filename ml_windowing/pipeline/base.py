"""
Abstract base class for pipeline stages.

Every stage follows the same contract:
  1. Receive ``AppConfig`` at construction.
  2. ``run(**kwargs)`` is the sole public API.
  3. ``run()`` creates a ``RunMetadata`` record, calls ``_execute()``,
     and persists the run record with its final status.
  4. ``_execute()`` is the stage-specific implementation.

Run records are written as JSON to ``<runs_dir>/run_<run_slug>.json``.
Stages never swallow exceptions: a failing ``_execute()`` is recorded as
``status='failed'`` and re-raised.

Usage::

    class MyStage(PipelineStage):
        stage_name = "windowing"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            return 42

    run = MyStage(config=app_config).run(sessions_path="data/sessions.jsonl")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from uuid import uuid4

from ml_windowing.config import AppConfig
from ml_windowing.models.meta import RunMetadata
from ml_windowing.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for pipeline stages.

    Subclasses must:
      1. Set the ``stage_name`` class variable.
      2. Implement ``_execute(run, **kwargs) -> int``.

    Attributes:
        stage_name: Identifier matching a valid ``RunMetadata.pipeline_stage``.
        config: The application configuration for this run.
        runs_dir: Directory run records are written to; ``None`` disables
            persistence.
    """

    stage_name: str

    def __init__(
        self,
        config: AppConfig,
        runs_dir: str | None = None,
    ) -> None:
        self.config = config
        self.runs_dir = runs_dir if runs_dir is not None else config.data.runs_dir

    def run(self, **kwargs) -> RunMetadata:
        """Execute this stage and return the finalized run record.

        Args:
            **kwargs: Stage-specific keyword arguments passed to ``_execute()``.

        Returns:
            ``RunMetadata`` with ``status='success'``, ``rows_processed`` and
            ``finished_at`` set.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                recording ``status='failed'``.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            config_snapshot=self.config.model_dump(mode="json"),
            started_at=utcnow(),
        )
        logger.info("Stage [%s] starting | run_slug=%s", self.stage_name, run.run_slug)

        try:
            rows = self._execute(run=run, **kwargs)
        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = utcnow()
            logger.error(
                "Stage [%s] FAILED: %s | run_slug=%s",
                self.stage_name, exc, run.run_slug,
            )
            self._persist_run(run)
            raise

        run.status = "success"
        run.rows_processed = rows
        run.finished_at = utcnow()
        logger.info(
            "Stage [%s] completed | rows=%d | run_slug=%s",
            self.stage_name, rows, run.run_slug,
        )
        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Stage-specific implementation.

        Args:
            run: The in-progress ``RunMetadata`` record (mutable).
            **kwargs: Stage-specific parameters.

        Returns:
            Number of records produced.
        """
        ...

    def _persist_run(self, run: RunMetadata) -> None:
        """Write the run record as JSON.

        Failures are logged, not raised: losing the audit record must not
        mask the stage's own outcome.
        """
        if not self.runs_dir:
            return
        path = Path(self.runs_dir) / f"run_{run.run_slug}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(run.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to persist RunMetadata for run_slug=%s: %s", run.run_slug, exc)
