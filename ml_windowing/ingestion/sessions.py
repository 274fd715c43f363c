"""
Session loading and per-user grouping.

This module stands in for the upstream extraction/query layer: it reads a
flat export of sessions and turns it into what the windowing core expects,
one deduplicated, time-sorted session list per user.

Input formats
-------------
``.jsonl`` / ``.json`` — one JSON object per line (blank lines ignored).
``.parquet``           — one row per session (read with pyarrow).

Record fields mirror :class:`~ml_windowing.models.session.Session`::

    {"session_id": "s-1", "user_id": "u-1",
     "visit_start_time": "2024-03-01T10:00:00Z",
     "last_hit_time": "2024-03-01T10:12:30Z",
     "has_positive_label": false,
     "facts": {"pageviews": 7, "source": "google"}}

A record that fails validation rejects its whole user rather than the file;
only records that cannot be tied to a user abort the load.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import pyarrow.parquet as pq
from pydantic import ValidationError

from ml_windowing.models.session import Session

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = frozenset({".jsonl", ".json", ".parquet"})


@dataclass(frozen=True)
class LoadedSessions:
    """Outcome of reading one session export.

    Attributes:
        sessions: Valid sessions in file order, excluding every session of a
            rejected user.
        rejected: user_id → one message per invalid record of that user.
    """

    sessions: list[Session] = field(default_factory=list)
    rejected: dict[str, list[str]] = field(default_factory=dict)


def load_sessions(path: Path) -> LoadedSessions:
    """Load and validate every session record in ``path``.

    A record that parses but fails ``Session`` validation (for example a
    ``last_hit_time`` before its ``visit_start_time``) rejects only its user:
    all of that user's sessions are left out and the reasons are returned in
    ``LoadedSessions.rejected``. Records that cannot be attributed to a user
    at all fail the whole file: if **any** record lacks a string ``user_id``,
    a single :class:`ValueError` is raised listing the first 10 of them.

    Args:
        path: Session export file (``.jsonl``, ``.json`` or ``.parquet``).

    Returns:
        ``LoadedSessions`` with the accepted sessions and the rejected users.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: On an unsupported suffix, unparseable JSON, a line that is
            not a JSON object, or records without a ``user_id``.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Session file not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported session file type '{suffix}'. "
            f"Expected one of {sorted(SUPPORTED_SUFFIXES)}."
        )

    if suffix == ".parquet":
        # Nullable Parquet columns → fall back to model defaults.
        records = [
            (row_no, {k: v for k, v in row.items() if v is not None})
            for row_no, row in enumerate(pq.read_table(path).to_pylist(), start=1)
        ]
    else:
        records = list(_read_json_lines(path))

    unreadable = [
        record_no for record_no, record in records
        if not isinstance(record.get("user_id"), str) or not record["user_id"]
    ]
    if unreadable:
        max_shown = 10
        detail = "\n".join(
            f"  Record {no}: missing or non-string user_id" for no in unreadable[:max_shown]
        )
        suffix_msg = (
            f"\n  … and {len(unreadable) - max_shown} more"
            if len(unreadable) > max_shown else ""
        )
        raise ValueError(
            f"{len(unreadable)} record(s) failed validation in {path.name}:\n{detail}{suffix_msg}"
        )

    sessions: list[Session] = []
    rejected: dict[str, list[str]] = defaultdict(list)
    for record_no, record in records:
        try:
            sessions.append(Session(**record))
        except (TypeError, ValidationError) as exc:
            rejected[record["user_id"]].append(f"record {record_no}: {_describe(exc)}")

    if rejected:
        sessions = [s for s in sessions if s.user_id not in rejected]
        for user_id, reasons in rejected.items():
            logger.warning(
                "Rejecting user %s: %d invalid session record(s)",
                user_id, len(reasons), extra={"user_id": user_id},
            )

    logger.info(
        "Loaded %d sessions from %s (%d user(s) rejected)",
        len(sessions), path.name, len(rejected),
    )
    return LoadedSessions(sessions=sessions, rejected=dict(rejected))


def group_sessions_by_user(sessions: Iterable[Session]) -> dict[str, list[Session]]:
    """Group sessions per user, deduplicated and sorted for the windowing core.

    - Duplicate ``(user_id, session_id)`` pairs keep their first occurrence.
    - Each user's list is sorted by ``(visit_start_time, last_hit_time)``.
    - Users are returned in sorted key order so downstream output is stable.

    Args:
        sessions: Sessions of any number of users, in any order.

    Returns:
        Mapping of user_id → sorted session list.
    """
    by_user: dict[str, dict[str, Session]] = defaultdict(dict)
    duplicates = 0
    for session in sessions:
        user_sessions = by_user[session.user_id]
        if session.session_id in user_sessions:
            duplicates += 1
            continue
        user_sessions[session.session_id] = session

    if duplicates:
        logger.warning("Dropped %d duplicate session record(s)", duplicates)

    return {
        user_id: sorted(
            by_user[user_id].values(),
            key=lambda s: (s.visit_start_time, s.last_hit_time),
        )
        for user_id in sorted(by_user)
    }


def _read_json_lines(path: Path) -> Iterable[tuple[int, dict[str, Any]]]:
    """Yield ``(line_number, record)`` for every non-blank line of ``path``."""
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON on line {line_no} of {path.name}: {exc}") from exc
            if not isinstance(record, dict):
                raise ValueError(
                    f"Line {line_no} of {path.name} is not a JSON object."
                )
            yield line_no, record


def _describe(exc: Exception) -> str:
    """One-line summary of a record validation failure."""
    if isinstance(exc, ValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'session'}: {err['msg']}"
            for err in exc.errors()
        )
    return str(exc)
