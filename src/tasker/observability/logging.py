"""
launchd-tasker — logging setup.

structlog loggers are used throughout the package; their events are rendered to
keyword arguments and handed to the stdlib ``tasker`` logger, which owns exactly
one handler. That handler writes either ``key=value`` lines or one JSON object
per line. Secret-looking keys and inline ``token=...`` assignments are redacted
in both formats.
"""

from __future__ import annotations

import json
import logging
import math
import re
import sys
import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Any, Final

import structlog

REDACTED: Final[str] = "***REDACTED***"
ROOT_LOGGER: Final[str] = "tasker"

_SECRET_KEY = re.compile(
    r"secret|token|passw(or)?d|passphrase|api_?key|authorization|credential|private_key",
    re.IGNORECASE,
)
_SECRET_ASSIGNMENT = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)(\s*[:=]\s*)[^\s,;]+"
)

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

_lock = threading.Lock()
_handler: logging.Handler | None = None


def redact_value(value: object, *, key: str | None = None) -> Any:
    """Return a JSON-ready copy of ``value`` with secrets masked.

    Mappings are walked recursively and a value stored under a secret-looking
    key is replaced wholesale; strings keep their text but lose any inline
    ``name=value`` secret.
    """

    if key is not None and _SECRET_KEY.search(key):
        return REDACTED
    if isinstance(value, Mapping):
        return {str(name): redact_value(item, key=str(name)) for name, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact_value(item) for item in value]
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, Path):
        value = value.as_posix()
    if isinstance(value, str):
        return _SECRET_ASSIGNMENT.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", value)
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return repr(value)


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    extras = {
        name: value
        for name, value in vars(record).items()
        if name not in _RECORD_ATTRIBUTES and not name.startswith("_")
    }
    return redact_value(extras)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        line: dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": redact_value(record.getMessage()),
        }
        fields = _record_fields(record)
        if fields:
            line["fields"] = fields
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _KeyValueFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        parts = [redact_value(super().format(record))]
        fields = _record_fields(record)
        for name in sorted(fields):
            value = fields[name]
            if isinstance(value, str) and value and not any(ch.isspace() for ch in value):
                parts.append(f"{name}={value}")
            else:
                parts.append(f"{name}={json.dumps(value, sort_keys=True, ensure_ascii=False)}")
        return " ".join(parts)


def setup_logging(
    *,
    level: int | str = "INFO",
    json_lines: bool = False,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Install the single ``tasker`` handler and point structlog at it.

    A second call swaps the handler out; it never stacks.
    """

    global _handler
    numeric = level if isinstance(level, int) else logging.getLevelName(level.strip().upper())
    if not isinstance(numeric, int):
        raise ValueError(f"unsupported logging level {level!r}")

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(_JsonFormatter() if json_lines else _KeyValueFormatter())
    logger = logging.getLogger(ROOT_LOGGER)
    with _lock:
        if _handler is not None:
            logger.removeHandler(_handler)
            _handler.close()
        _handler = handler
        logger.addHandler(handler)
        logger.setLevel(numeric)
        logger.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return logger


def shutdown_logging() -> None:
    """Remove the installed handler and restore structlog defaults."""

    global _handler
    with _lock:
        if _handler is None:
            return
        logging.getLogger(ROOT_LOGGER).removeHandler(_handler)
        _handler.flush()
        _handler.close()
        _handler = None
    structlog.reset_defaults()


__all__ = ["REDACTED", "ROOT_LOGGER", "redact_value", "setup_logging", "shutdown_logging"]
