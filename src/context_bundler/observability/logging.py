"""
context-bundler — structured run logging

File: src/context_bundler/observability/logging.py

Purpose
- One JSON object per log line for every CLI run, tagged with the run id and
  whatever correlation fields (request id, command) are bound at emit time.
- Emitting never blocks discovery or token counting: records go through a
  bounded queue drained by a listener thread; overflow is counted and dropped.

Sinks
- ``<log_dir>/<run_id>/bundler.jsonl`` when a log directory is configured.
- stderr when ``log_to_stderr`` is set (the default).
"""

from __future__ import annotations

import atexit
import contextvars
import copy
import json
import logging
import logging.handlers
import math
import queue
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

LOG_FILENAME: Final[str] = "bundler.jsonl"
ROOT_LOGGER_NAME: Final[str] = "context_bundler"

_CORRELATION_KEYS: Final[frozenset[str]] = frozenset({"run_id", "request_id", "command"})

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
    | {"message", "asctime", "taskName", "correlation"}
)

_Correlation = tuple[tuple[str, str], ...]
_CORRELATION: contextvars.ContextVar[_Correlation] = contextvars.ContextVar(
    "context_bundler_correlation", default=()
)

_EXCEPTION_FORMATTER = logging.Formatter()

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one structured logging session.

    ``base_log_dir=None`` disables the file sink.
    """

    run_id: str
    base_log_dir: Path | str | None = None
    logger_name: str = ROOT_LOGGER_NAME
    level: int | str = "WARNING"
    queue_size: int = 4096
    log_filename: str = LOG_FILENAME
    log_to_stderr: bool = True


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_Correlation]:
    """Bind (or, with ``None``, unbind) correlation fields; returns a reset token."""

    current = get_correlation_context()
    for key, value in fields.items():
        name = _non_empty(key, "correlation key")
        if value is None:
            current.pop(name, None)
        else:
            current[name] = _non_empty(value, "correlation value")
    return _CORRELATION.set(tuple(current.items()))


def reset_correlation_fields(token: contextvars.Token[_Correlation]) -> None:
    _CORRELATION.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


# ---------------------------------------------------------------------------
# Queue plumbing and formatting
# ---------------------------------------------------------------------------


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Runs on the emitting thread: the contextvar is only visible here.
        prepared = copy.copy(record)
        prepared.msg = record.getMessage()
        prepared.args = None
        if record.exc_info:
            prepared.exc_text = _EXCEPTION_FORMATTER.formatException(record.exc_info)
        prepared.exc_info = None
        correlation = get_correlation_context()
        if correlation:
            prepared.correlation = correlation
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": self._run_id,
        }
        event.update(getattr(record, "correlation", {}))

        extras = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in _CORRELATION_KEYS
            and not key.startswith("_")
        }
        if extras:
            event["fields"] = extras
        if record.exc_text:
            event["exception"] = record.exc_text
        if record.stack_info:
            event["stack"] = record.stack_info
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=repr)
    return repr(value)


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@dataclass(slots=True, eq=False)
class StructuredLoggingHandle:
    """A running logging session; ``shutdown`` drains the queue and restores the logger."""

    logger: logging.Logger
    run_id: str
    log_path: Path | None
    _queue_handler: _DroppingQueueHandler = field(repr=False)
    _listener: logging.handlers.QueueListener = field(repr=False)
    _sinks: tuple[logging.Handler, ...] = field(repr=False)
    _restore_propagate: bool = field(repr=False)
    _restore_level: int = field(repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            # QueueListener.stop() processes everything already enqueued.
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()
            self.logger.propagate = self._restore_propagate
            self.logger.setLevel(self._restore_level)
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Start a logging session, replacing any session that is still active."""

    global _active

    run_id = _non_empty(config.run_id, "run_id")
    logger_name = _non_empty(config.logger_name, "logger_name")
    filename = _non_empty(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must be a bare file name")
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")
    level = _parse_level(config.level)

    shutdown_logging()

    formatter = _JsonLinesFormatter(run_id)
    sinks: list[logging.Handler] = []
    log_path: Path | None = None
    if config.base_log_dir is not None:
        log_path = Path(config.base_log_dir) / run_id / filename
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    restore_propagate, restore_level = logger.propagate, logger.level
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()

    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        _queue_handler=queue_handler,
        _listener=listener,
        _sinks=tuple(sinks),
        _restore_propagate=restore_propagate,
        _restore_level=restore_level,
    )
    with _active_lock:
        _active = handle
    _hook_atexit()
    return handle


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    level: int | str | None = None,
) -> logging.Logger:
    """Start a session from the ``[observability]`` config section.

    ``level`` overrides ``log_level`` (the CLI passes ``DEBUG`` for ``--verbose``).
    """

    section = dict(observability_config or {})
    raw_level = level if level is not None else section.get("log_level", "WARNING")
    raw_dir = section.get("log_dir")
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=raw_dir if isinstance(raw_dir, (str, Path)) else None,
            level=raw_level if isinstance(raw_level, (int, str)) else "WARNING",
            log_to_stderr=bool(section.get("log_to_stderr", True)),
        )
    )
    return handle.logger


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Shut down ``handle``, or the active session when none is given."""

    global _active

    with _active_lock:
        target = handle if handle is not None else _active
        if target is None:
            return
        if _active is target:
            _active = None
    target.shutdown()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def _hook_atexit() -> None:
    global _atexit_hooked
    if not _atexit_hooked:
        atexit.register(shutdown_logging)
        _atexit_hooked = True


def _parse_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(str(value).strip().upper())
    if not isinstance(parsed, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return parsed


def _non_empty(value: str, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty string")
    return value.strip()


__all__ = [
    "LOG_FILENAME",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
