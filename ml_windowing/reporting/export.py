"""
Window sinks and the run manifest.

A sink receives the windows of one user at a time, in the order the generator
produced them, and owns them from then on. Three sinks are provided:

    ListWindowSink     keeps windows in memory (tests, notebooks)
    JsonlWindowSink    one ``LookbackWindow.to_record()`` JSON object per line
    ParquetWindowSink  buffers records, writes one Snappy Parquet file on close

The manifest written next to the output records what was produced and with
which windowing parameters, so an exported dataset can be traced back to its
run.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Protocol

import pyarrow as pa
import pyarrow.parquet as pq

from ml_windowing.config import AppConfig
from ml_windowing.models.meta import RunMetadata
from ml_windowing.models.window import LookbackWindow

log = logging.getLogger(__name__)


class WindowSink(Protocol):
    """Consumer of emitted windows."""

    def write(self, windows: Iterable[LookbackWindow]) -> int:
        """Consume ``windows`` in order; return how many were written."""
        ...

    def close(self) -> None:
        ...


class ListWindowSink:
    """Collects windows in memory."""

    def __init__(self) -> None:
        self.windows: list[LookbackWindow] = []

    def write(self, windows: Iterable[LookbackWindow]) -> int:
        before = len(self.windows)
        self.windows.extend(windows)
        return len(self.windows) - before

    def close(self) -> None:
        pass


class JsonlWindowSink:
    """Appends one JSON object per window to ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "w", encoding="utf-8")

    def write(self, windows: Iterable[LookbackWindow]) -> int:
        written = 0
        for window in windows:
            self._fh.write(json.dumps(window.to_record(), default=_json_default))
            self._fh.write("\n")
            written += 1
        return written

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()
            log.info("Windows written: %s", self.path.name)


# ── Parquet ────────────────────────────────────────────────────────────────────

_TS = pa.timestamp("us", tz="UTC")

WINDOW_SCHEMA = pa.schema([
    pa.field("user_id",             pa.string(),            nullable=False),
    pa.field("start_time",          _TS,                    nullable=False),
    pa.field("end_time",            _TS,                    nullable=False),
    pa.field("effective_date",      _TS,                    nullable=False),
    pa.field("first_activity_time", _TS,                    nullable=False),
    pa.field("prediction_label",    pa.bool_(),             nullable=False),
    pa.field("session_count",       pa.int32(),             nullable=False),
    pa.field("session_ids",         pa.list_(pa.string()),  nullable=False),
    pa.field("sessions_json",       pa.string(),            nullable=False),
])


def records_to_table(records: list[dict[str, Any]]) -> pa.Table:
    """Convert window records to a PyArrow table with ``WINDOW_SCHEMA``."""
    arrays = {
        field.name: pa.array([r[field.name] for r in records], type=field.type)
        for field in WINDOW_SCHEMA
    }
    return pa.table(arrays, schema=WINDOW_SCHEMA)


class ParquetWindowSink:
    """Buffers window records and writes a single Parquet file on ``close()``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._records: list[dict[str, Any]] = []
        self._closed = False

    def write(self, windows: Iterable[LookbackWindow]) -> int:
        before = len(self._records)
        self._records.extend(w.to_record() for w in windows)
        return len(self._records) - before

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        pq.write_table(records_to_table(self._records), str(self.path), compression="snappy")
        log.info("Parquet written: %s (%d rows)", self.path.name, len(self._records))


def make_window_sink(fmt: str, path: Path) -> WindowSink:
    """Build the sink for an output format (``"jsonl"`` or ``"parquet"``)."""
    if fmt == "jsonl":
        return JsonlWindowSink(path)
    if fmt == "parquet":
        return ParquetWindowSink(path)
    raise ValueError(f"Unknown output format '{fmt}'. Expected 'jsonl' or 'parquet'.")


def make_output_path(output_dir: str, fmt: str, run_slug: str) -> Path:
    """Deterministic output file path for one run."""
    return Path(output_dir) / f"windows_{run_slug}.{fmt}"


# ── Manifest ───────────────────────────────────────────────────────────────────

def _hash_file(path: Path) -> str:
    """Return the SHA-256 hex digest of a file's contents."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def build_manifest(
    run: RunMetadata,
    output_path: Path | None,
    output_format: str,
    config: AppConfig,
) -> dict[str, Any]:
    """Build the manifest dict describing one windowing run's output."""
    rows = run.rows_processed
    return {
        "schema_version": "1.0",
        "built_at":       datetime.now(tz=timezone.utc).isoformat(),
        "run_slug":       run.run_slug,
        "output": {
            "path":   str(output_path) if output_path else None,
            "format": output_format,
            "sha256": _hash_file(output_path) if output_path and output_path.exists() else None,
            "rows":   rows,
        },
        "users": {
            "processed": run.users_processed,
            "failed":    run.users_failed,
        },
        "positive_label_rate": round(run.positive_windows / rows, 4) if rows else 0.0,
        "failures":            [f.model_dump() for f in run.failures],
        "windowing":           config.windowing.model_dump(mode="json"),
    }


def write_manifest(manifest: dict[str, Any], path: Path) -> None:
    """Write the manifest dict as pretty-printed JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, default=str)
    log.info("Manifest written: %s", path.name)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
