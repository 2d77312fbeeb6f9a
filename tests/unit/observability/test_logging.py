"""
context-bundler — unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate structured JSON logging with correlation metadata and queue-backed reliability.

What this test file should cover
- JSON line validity and extra-field capture.
- Correlation fields captured on the emitting thread.
- Multi-threaded logging stability.
- Shutdown restores the logger so stdlib capture works again.

Non-functional requirements
- Deterministic and non-flaky.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from context_bundler.observability import (
    LoggingConfig,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    reset_correlation_fields,
    set_correlation_fields,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"context_bundler.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def _config(tmp_path: Path, **overrides: object) -> LoggingConfig:
    values: dict[str, object] = {
        "run_id": "run-1",
        "base_log_dir": tmp_path,
        "logger_name": _logger_name(),
        "level": "DEBUG",
        "log_to_stderr": False,
    }
    values.update(overrides)
    return LoggingConfig(**values)  # type: ignore[arg-type]


def test_records_are_json_lines_with_fields_and_correlation(tmp_path: Path) -> None:
    handle = setup_structured_logging(_config(tmp_path))

    with correlation_scope(request_id="req-7", command="assemble"):
        handle.logger.info("context assembled", extra={"file_count": 3, "over_limit": False})
    handle.logger.warning("outside scope")
    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "run-1" / "bundler.jsonl"
    first, second = _read_json_lines(handle.log_path)
    assert first["message"] == "context assembled"
    assert first["level"] == "INFO"
    assert first["run_id"] == "run-1"
    assert first["request_id"] == "req-7"
    assert first["command"] == "assemble"
    assert first["fields"] == {"file_count": 3, "over_limit": False}
    assert str(first["timestamp"]).endswith("Z")
    assert second["message"] == "outside scope"
    assert "request_id" not in second
    assert "fields" not in second


def test_exception_text_is_kept_out_of_the_message(tmp_path: Path) -> None:
    handle = setup_structured_logging(_config(tmp_path))

    try:
        raise ValueError("bad read")
    except ValueError:
        handle.logger.exception("count failed")
    shutdown_logging(handle)

    assert handle.log_path is not None
    (line,) = _read_json_lines(handle.log_path)
    assert line["message"] == "count failed"
    assert "ValueError: bad read" in str(line["exception"])


def test_level_filters_records(tmp_path: Path) -> None:
    handle = setup_structured_logging(_config(tmp_path, level="WARNING"))

    handle.logger.info("dropped")
    handle.logger.error("kept")
    shutdown_logging(handle)

    assert handle.log_path is not None
    assert [line["message"] for line in _read_json_lines(handle.log_path)] == ["kept"]


def test_setup_logging_reads_observability_mapping(tmp_path: Path) -> None:
    logger = setup_logging(
        {"log_level": "debug", "log_to_stderr": False, "log_dir": str(tmp_path)},
        run_id="cli-run",
    )

    handle = get_active_logging_handle()
    assert handle is not None
    assert handle.logger is logger
    assert logger.level == logging.DEBUG
    assert handle.log_path == tmp_path / "cli-run" / "bundler.jsonl"


def test_without_log_dir_no_file_is_created(tmp_path: Path) -> None:
    handle = setup_structured_logging(_config(tmp_path, base_log_dir=None))

    handle.logger.warning("stderr disabled too")
    shutdown_logging(handle)

    assert handle.log_path is None
    assert list(tmp_path.iterdir()) == []


def test_shutdown_restores_propagation_and_level(tmp_path: Path) -> None:
    name = _logger_name()
    logger = logging.getLogger(name)
    logger.setLevel(logging.ERROR)
    assert logger.propagate

    handle = setup_structured_logging(_config(tmp_path, logger_name=name))
    assert not logger.propagate
    shutdown_logging(handle)

    assert logger.propagate
    assert logger.level == logging.ERROR
    assert handle.is_shutdown
    assert get_active_logging_handle() is None


def test_new_setup_replaces_previous_handle(tmp_path: Path) -> None:
    first = setup_structured_logging(_config(tmp_path / "one"))
    second = setup_structured_logging(_config(tmp_path / "two"))

    assert first.is_shutdown
    assert get_active_logging_handle() is second


def test_multithreaded_records_are_all_written(tmp_path: Path) -> None:
    handle = setup_structured_logging(_config(tmp_path))

    def _emit(worker: int) -> None:
        with correlation_scope(request_id=f"worker-{worker}"):
            for index in range(50):
                handle.logger.info("tick", extra={"index": index})

    threads = [threading.Thread(target=_emit, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    shutdown_logging(handle)

    assert handle.log_path is not None
    lines = _read_json_lines(handle.log_path)
    assert len(lines) == 200
    assert handle.dropped_records == 0
    assert {line["request_id"] for line in lines} == {f"worker-{index}" for index in range(4)}


def test_correlation_fields_set_and_reset() -> None:
    outer = set_correlation_fields(run_id="r", request_id="q")
    inner = set_correlation_fields(request_id=None)

    assert get_correlation_context() == {"run_id": "r"}
    reset_correlation_fields(inner)
    assert get_correlation_context() == {"run_id": "r", "request_id": "q"}
    reset_correlation_fields(outer)
    assert get_correlation_context() == {}


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"queue_size": 0}, "queue_size"),
        ({"log_filename": "nested/file.jsonl"}, "log_filename"),
        ({"run_id": "  "}, "run_id"),
        ({"level": "CHATTY"}, "unsupported logging level"),
    ],
)
def test_invalid_logging_config_is_rejected(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    with pytest.raises(ValueError, match=message):
        setup_structured_logging(_config(tmp_path, **overrides))
