"""
Windowing stage: sessions file → labeled lookback windows.

Steps
-----
1. ``load_sessions()`` + ``group_sessions_by_user()``
2. ``run_fanout()`` over users (serial or Ray)
3. Write each user's windows to the sink in generation order
4. ``write_manifest()`` next to the output

Users with invalid session records, or whose session list breaks the input
contract, are recorded in ``run.failures`` and skipped; the stage still
succeeds. An in-memory sink may be passed in place of the configured file
output.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ml_windowing.ingestion.sessions import group_sessions_by_user, load_sessions
from ml_windowing.models.meta import RunMetadata, UserFailure
from ml_windowing.pipeline.base import PipelineStage
from ml_windowing.pipeline.fanout import run_fanout
from ml_windowing.reporting.export import (
    WindowSink,
    build_manifest,
    make_output_path,
    make_window_sink,
    write_manifest,
)

logger = logging.getLogger(__name__)


class WindowingStage(PipelineStage):
    """Generates lookback windows for every user in a session export."""

    stage_name = "windowing"

    def _execute(
        self,
        run: RunMetadata,
        sessions_path: Optional[str] = None,
        output_path: Optional[str] = None,
        output_format: Optional[str] = None,
        sink: Optional[WindowSink] = None,
        **kwargs,
    ) -> int:
        """Run the windowing walk for all users.

        Args:
            run:           In-progress run record.
            sessions_path: Session export; defaults to ``data.sessions_path``.
            output_path:   Output file; defaults to
                           ``<data.output_dir>/windows_<run_slug>.<format>``.
            output_format: ``"jsonl"`` or ``"parquet"``; defaults to
                           ``data.output_format``.
            sink:          Explicit sink; when given, no output file or
                           manifest is written and the caller keeps
                           ownership (the stage does not close it).

        Returns:
            Number of windows written.
        """
        data_cfg = self.config.data
        fmt = output_format or data_cfg.output_format
        source = Path(sessions_path or data_cfg.sessions_path)

        loaded = load_sessions(source)
        for user_id in sorted(loaded.rejected):
            run.users_failed += 1
            run.failures.append(
                UserFailure(
                    user_id=user_id,
                    error_type="InvalidSessionRecord",
                    message="; ".join(loaded.rejected[user_id]),
                )
            )

        grouped = group_sessions_by_user(loaded.sessions)
        logger.info("Windowing %d users from %s", len(grouped), source.name)

        out_path: Optional[Path] = None
        if sink is None:
            out_path = (
                Path(output_path) if output_path
                else make_output_path(data_cfg.output_dir, fmt, run.run_slug)
            )
            sink = make_window_sink(fmt, out_path)
            run.output_path = str(out_path)

        written = 0
        try:
            for result in run_fanout(grouped, self.config.windowing, self.config.runner):
                if not result.ok:
                    run.users_failed += 1
                    run.failures.append(result.failure)
                    continue
                run.users_processed += 1
                run.positive_windows += sum(w.prediction_label for w in result.windows)
                written += sink.write(result.windows)
                run.rows_processed = written
        finally:
            if out_path is not None:
                sink.close()

        if run.users_failed:
            logger.warning(
                "%d of %d users rejected (see run record %s)",
                run.users_failed, len(grouped) + len(loaded.rejected), run.run_slug,
            )

        if out_path is not None:
            manifest = build_manifest(run, out_path, fmt, self.config)
            write_manifest(manifest, out_path.with_suffix(".manifest.json"))

        return written
