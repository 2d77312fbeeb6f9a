"""Process entrypoint: runs the CLI and turns failures into exit codes.

Exit codes
- 0 success
- 2 invalid input (request validation, config, CLI usage)
- 3 collaborator failure (tokenizer, external generator, token ceiling)
- 4 not found (repository root, directory, input file)
- 5 anything else; a traceback is printed
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_INPUT = 2
    COLLABORATOR_ERROR = 3
    NOT_FOUND = 4
    INTERNAL_ERROR = 5


_EXIT_CODE_VALUES = frozenset(code.value for code in ExitCode)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return the process exit code; never raises."""

    from context_bundler.ui import cli

    try:
        return _from_system_exit(cli.run_cli(argv))
    except SystemExit as exc:
        # argparse exits with 2 on usage errors and 0 for --help/--version.
        return _from_system_exit(exc.code)
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return ExitCode.INTERNAL_ERROR
    except Exception as exc:  # noqa: BLE001 - process boundary
        code = exit_code_for(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(f"error: {str(exc).strip() or type(exc).__name__}", file=sys.stderr)
        return code


def main() -> None:
    raise SystemExit(cli_entrypoint())


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map ``exc`` to an exit code by the first typed failure in its chain."""

    from context_bundler.config import ConfigLoadError, ConfigValidationError
    from context_bundler.errors import CollaboratorError, InvalidInputError, NotFoundError

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((NotFoundError, FileNotFoundError, NotADirectoryError), ExitCode.NOT_FOUND),
        ((InvalidInputError, ConfigLoadError, ConfigValidationError), ExitCode.INVALID_INPUT),
        ((CollaboratorError,), ExitCode.COLLABORATOR_ERROR),
    )
    for link in _chain(exc):
        for types, code in routes:
            if isinstance(link, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _from_system_exit(code: object) -> int:
    if code is None:
        return ExitCode.SUCCESS
    if isinstance(code, int) and code in _EXIT_CODE_VALUES:
        return code
    if isinstance(code, str) and code.strip():
        print(code.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for", "main"]
