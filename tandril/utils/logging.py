# tandril/utils/logging.py
"""JSON log output tagged with the unit of work being processed.

A command id or automation run id is kept in a ContextVar while work for it
is in flight, so every line logged on its behalf (store, executor, queue)
carries the same ``correlation_id`` without threading it through calls.

Structured context can be attached per call::

    logger.info("Step done", extra={"context": {"step": 2}})
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# Levels at and above this also report where the line was logged
_SOURCE_LEVEL = logging.WARNING


def set_correlation_id(correlation_id: str) -> Token[str]:
    """Tag the current context with a command or run id.

    Returns:
        Token that restores the previous id via ``correlation_id_var.reset``.
    """
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    return correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Tag log lines with ``correlation_id`` until the block exits.

    The previous id is restored afterwards, so nested runs (an automation
    started from a scheduler tick) do not leak their id to the caller.
    """
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


class StructuredFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Keys: ``timestamp`` (ISO 8601, UTC), ``level``, ``logger``, ``message``,
    plus ``correlation_id`` when set, ``context`` when passed via ``extra``,
    ``source`` for warnings and errors, and ``exception`` with a traceback.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        context = getattr(record, "context", None)
        if isinstance(context, dict) and context:
            entry["context"] = context

        if record.levelno >= _SOURCE_LEVEL:
            entry["source"] = f"{record.module}:{record.lineno}"

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_structured_logging(level: int | str = logging.INFO) -> None:
    """Send root logging through StructuredFormatter on stderr.

    Safe to call more than once: the handler is installed a single time and
    later calls only change the level.

    Args:
        level: Level number or name such as "debug"; unknown names mean INFO.
    """
    root = logging.getLogger()
    if not any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        root.addHandler(handler)
    root.setLevel(_resolve_level(level))
