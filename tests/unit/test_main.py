"""
context-bundler — unit tests for the process entrypoint

File: tests/unit/test_main.py

Purpose
- Validate exit-code routing from typed failures, including failures that
  arrive wrapped in another exception.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import pytest

from context_bundler.config import ConfigLoadError
from context_bundler.errors import (
    GeneratorError,
    RepositoryNotFoundError,
    RequestValidationError,
    UnknownEncodingError,
    ValidationIssue,
)
from context_bundler.main import ExitCode, cli_entrypoint
from context_bundler.ui import cli as cli_module


def _raising(exc: BaseException) -> Callable[[Sequence[str] | None], int]:
    def _run_cli(argv: Sequence[str] | None = None) -> int:
        raise exc

    return _run_cli


def _wrapped(inner: Exception) -> RuntimeError:
    outer = RuntimeError("wrapper")
    outer.__cause__ = inner
    return outer


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (RepositoryNotFoundError("/nowhere"), ExitCode.NOT_FOUND),
        (FileNotFoundError("gone"), ExitCode.NOT_FOUND),
        (
            RequestValidationError([ValidationIssue("maxTokens", "must be > 0")]),
            ExitCode.INVALID_INPUT,
        ),
        (ConfigLoadError("config file not found: x"), ExitCode.INVALID_INPUT),
        (UnknownEncodingError("bogus"), ExitCode.COLLABORATOR_ERROR),
        (GeneratorError("PromptCode failed: boom"), ExitCode.COLLABORATOR_ERROR),
    ],
)
def test_typed_failures_map_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    exc: Exception,
    expected: ExitCode,
) -> None:
    monkeypatch.setattr(cli_module, "run_cli", _raising(exc))

    assert cli_entrypoint([]) == expected
    assert capsys.readouterr().err.startswith("error: ")


def test_wrapped_failure_is_routed_by_its_cause(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli_module, "run_cli", _raising(_wrapped(RepositoryNotFoundError("/missing")))
    )

    assert cli_entrypoint([]) == ExitCode.NOT_FOUND


def test_unexpected_failure_is_internal_with_traceback(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli_module, "run_cli", _raising(KeyError("surprise")))

    assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR
    assert "Traceback" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("code", "expected"),
    [(None, 0), (0, 0), (2, 2), (99, 5), ("fatal", 5)],
)
def test_system_exit_codes_are_normalized(
    monkeypatch: pytest.MonkeyPatch, code: object, expected: int
) -> None:
    monkeypatch.setattr(cli_module, "run_cli", _raising(SystemExit(code)))

    assert cli_entrypoint([]) == expected


def test_keyboard_interrupt_is_internal(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "run_cli", _raising(KeyboardInterrupt()))

    assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR


def test_argparse_usage_errors_exit_two(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["no-such-command"]) == ExitCode.INVALID_INPUT
    assert "invalid choice" in capsys.readouterr().err
