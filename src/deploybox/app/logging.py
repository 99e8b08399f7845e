"""Structured logging for deploybox.

One stdout handler on the root logger. In json mode every record carries
service identity, the request trace id and whatever ``extra`` fields the
caller passed (``event``, ``instance_id``, ``port``...).
"""

import logging
import sys
import time
from collections import deque
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

from pythonjsonlogger.json import JsonFormatter

from deploybox.app.config import LoggingConfig, get_settings

trace_id_ctx: ContextVar[str | None] = ContextVar("trace_id", default=None)

_JSON_FIELDS = "%(levelname)s %(name)s %(process)d %(message)s"
_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_RENAMED = {"levelname": "level", "name": "logger", "process": "pid"}

# Libraries that are chatty at INFO/DEBUG
_QUIET_LOGGERS = ("docker", "urllib3", "sqlalchemy.engine", "multipart")


def get_trace_id() -> str | None:
    return trace_id_ctx.get()


def set_trace_id(trace_id: str | None = None) -> str:
    """Bind a trace id to the current context; a fresh one if none given."""
    tid = trace_id or uuid4().hex
    trace_id_ctx.set(tid)
    return tid


def clear_trace_context() -> None:
    trace_id_ctx.set(None)


class RateLimitFilter(logging.Filter):
    """Drops repeats of the same call site beyond rate_per_minute.

    The first dropped record of a burst is let through once, tagged, so the
    suppression itself is visible. ERROR and above are never dropped.
    """

    WINDOW_SECONDS = 60.0

    def __init__(self, rate_per_minute: int = 100) -> None:
        super().__init__()
        self.rate_per_minute = rate_per_minute
        self._seen: dict[tuple[str, int, str], deque[float]] = {}
        self._muted: set[tuple[str, int, str]] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True

        site = (record.name, record.lineno, str(record.msg))
        now = time.monotonic()
        stamps = self._seen.setdefault(site, deque())
        while stamps and now - stamps[0] >= self.WINDOW_SECONDS:
            stamps.popleft()

        if len(stamps) < self.rate_per_minute:
            if len(stamps) < self.rate_per_minute // 2:
                self._muted.discard(site)
            stamps.append(now)
            return True

        if site in self._muted:
            return False
        self._muted.add(site)
        stamps.append(now)
        record.msg = f"[RATE LIMITED] {record.msg} (max {self.rate_per_minute}/min)"
        return True


class CustomJsonFormatter(JsonFormatter):
    """JSON lines with service identity and the current trace id."""

    def __init__(self, config: LoggingConfig | None = None, **kwargs: Any) -> None:
        config = config or get_settings().logging
        super().__init__(
            _JSON_FIELDS,
            rename_fields=_RENAMED,
            static_fields={
                "service": config.service_name,
                "schema_version": config.schema_version,
            },
            timestamp=True,
            **kwargs,
        )

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if trace_id := get_trace_id():
            log_record.setdefault("trace_id", trace_id)
        # uvicorn adds an ANSI-colored duplicate of the message
        log_record.pop("color_message", None)


def _formatter(config: LoggingConfig) -> logging.Formatter:
    if config.format == "json":
        return CustomJsonFormatter(config)
    return logging.Formatter(_TEXT_FORMAT)


def setup_logging(level: int | None = None) -> None:
    """Install the deploybox handler on the root and uvicorn loggers.

    Args:
        level: Root log level. Defaults to LOGGING_LEVEL.
    """
    config = get_settings().logging
    if level is None:
        level = logging.getLevelName(config.level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_formatter(config))
    handler.addFilter(RateLimitFilter(config.rate_limit_per_minute))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = [handler]
        uv_logger.propagate = False
    # LoggingMiddleware emits the per-request line
    logging.getLogger("uvicorn.access").disabled = True

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
