"""Structured JSON logger for spconflict.

Each log record is written as one line of JSON, so log pipelines can
ingest the output without custom parsing.

Typical structured output::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "WARNING",
     "logger": "spconflict.detector", "message": "Conflict detected",
     "op": "check_for_conflicts", "list_id": "5f2c...", "item_id": 42}

Usage::

    from spconflict.observability import get_logger

    log = get_logger("spconflict.detector")
    log.info("snapshot updated", extra={"extra_fields": {"item_id": 42}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Render each log record as a single-line JSON object.

    The object always contains ``ts`` (ISO-8601 UTC), ``level``, ``logger``
    and ``message``.  Fields passed as ``extra={"extra_fields": {...}}`` are
    merged in at the top level.  Exception and stack info are added when
    the record carries them.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(record, "extra_fields", None)
        if extra_fields:
            entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


# Logger names that already have a handler attached, so repeated
# ``get_logger`` calls do not stack handlers.
_configured_loggers: set[str] = set()


def get_logger(
    name: str = "spconflict",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name, ``"spconflict"`` by default.  Sub-loggers such as
        ``"spconflict.scheduler"`` each get their own handler.
    level:
        Minimum level, as an ``int`` or a case-insensitive name.
    stream:
        Handler output stream.  Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        The named logger with a :class:`StructuredFormatter` handler.
        Calling again with the same *name* returns it unchanged.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        resolved_level = (
            logging.getLevelName(level.upper())
            if isinstance(level, str)
            else level
        )
        logger.setLevel(resolved_level)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        _configured_loggers.add(name)

    return logger
