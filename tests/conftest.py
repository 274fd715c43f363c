"""
Shared pytest fixtures for the windowing test suite.

Provides:
  - ``write_sessions``: writes raw session records as a JSON-lines export
    under ``tmp_path`` and returns its path.

Plain builders (``D0``, ``build_session``, ``build_config``...) live in
``helpers.py``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest


@pytest.fixture
def write_sessions(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing ``records`` to ``tmp_path / name``, one JSON object per line."""

    def _write(records: list[dict[str, Any]], name: str = "sessions.jsonl") -> Path:
        path = tmp_path / name
        path.write_text("\n".join(json.dumps(r) for r in records) + "\n", encoding="utf-8")
        return path

    return _write
