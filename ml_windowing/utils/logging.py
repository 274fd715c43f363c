"""
Logging setup for the windowing pipeline.

``configure_logging(config)`` is called once by the CLI before a stage runs.
Library modules only ever do ``logger = logging.getLogger(__name__)``; they
never configure handlers themselves.

With ``json_format = true`` under ``[logging]`` every record is written as a
single JSON object, e.g.::

    {"ts": "2026-03-02T09:15:00Z", "level": "WARNING",
     "logger": "ml_windowing.pipeline.fanout", "msg": "...", "user_id": "u-17"}

Keys passed through ``extra=`` (``user_id``, ``run_slug``...) are promoted to
top-level fields.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ml_windowing.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    """Render a record as one JSON line (``ts``, ``level``, ``logger``, ``msg``)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                LOG_DATE_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        for key, val in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
                payload[key] = val
        return json.dumps(payload, default=str)


def configure_logging(config: "LoggingConfig") -> None:
    """Configure the root logger from the ``[logging]`` config section.

    Installs a stdout handler and, when ``config.log_file`` is non-empty, a
    UTF-8 file handler (parent directories are created). Both share the same
    formatter.

    Args:
        config: Logging section of ``AppConfig``.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    formatter: logging.Formatter
    if config.json_format:
        formatter = JsonLineFormatter()
    else:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Ray and pyarrow are chatty at INFO.
    for noisy in ("ray", "pyarrow", "filelock"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
