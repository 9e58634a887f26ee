"""Logging setup for the ``addin-discovery`` command.

Two output formats are available: a text line per record and one JSON object
per record. Both mask GitHub credentials and carry the fields bound with
:class:`LogContext`, which the pipeline uses for the current stage and
record::

    with LogContext(stage="find_solution", record="Cake.Foo"):
        logger.info("searching")
    # 2019-06-03 14:30:05,120 | INFO | addin_discovery.steps | searching | record=Cake.Foo stage=find_solution

Records logged with ``extra=exc.as_log_fields()`` also carry the error code.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
from typing import IO, Any

from addin_discovery.secrets import redact_string, redact_structure

HANDLER_NAME = "addin-discovery"
ERROR_FIELDS = ("error_code", "error_message", "error_context")

_fields: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("addin_discovery_log_fields")


def get_log_context() -> dict[str, Any]:
    return dict(_fields.get({}))


def clear_log_context() -> None:
    _fields.set({})


class LogContext:
    """Binds ``key=value`` fields to every record logged inside the block.

    Threads start with an empty context, so per-record tasks bind their own.
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = _fields.set({**get_log_context(), **self.fields})
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _fields.reset(self._token)
            self._token = None


def _render_message(record: logging.LogRecord) -> str:
    msg = redact_structure(record.msg)
    args = redact_structure(record.args)
    if not args:
        return redact_string(str(msg))
    try:
        return redact_string(str(msg) % args)
    except (TypeError, ValueError, KeyError):
        return redact_string(f"{msg} {args}")


class TextFormatter(logging.Formatter):
    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        line = f"{self.formatTime(record)} | {record.levelname} | {record.name} | {_render_message(record)}"
        fields = get_log_context()
        error_code = getattr(record, "error_code", None)
        if error_code:
            fields["error_code"] = error_code
        if fields:
            line += " | " + " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return redact_string(line)


class JsonFormatter(logging.Formatter):
    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": _render_message(record),
        }
        context = get_log_context()
        if context:
            payload["context"] = {key: str(value) for key, value in redact_structure(context).items()}
        for name in ERROR_FIELDS:
            if hasattr(record, name):
                payload[name] = redact_structure(getattr(record, name))
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or "INFO").upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    *,
    level: str | int | None = "INFO",
    fmt: str = "text",
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Install the discovery handler on the root logger, replacing a previous one."""
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(JsonFormatter() if fmt.lower() == "json" else TextFormatter())
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))

    # urllib3 logs every retry at WARNING, the GitHub client already reports them
    logging.getLogger("urllib3").setLevel(logging.ERROR)
    return handler


def add_logging_args(parser: Any) -> None:
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="text",
        choices=["text", "json"],
        help="Logging format (default: text)",
    )
