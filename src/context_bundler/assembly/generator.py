"""
context-bundler — external prompt generator adapter

File: src/context_bundler/assembly/generator.py

Purpose
- Delegate prompt generation to the locally-installed ``promptcode`` CLI as
  an alternative to the built-in assembler.

Behavior
- Invocation: ``<command> generate -f <file>... [--template T] [--instruction I]``
  run with the repository root as working directory.
- Exit code 0 returns captured stdout; anything else raises ``GeneratorError``
  carrying stderr (or stdout when stderr is empty).
- A missing binary or a timeout also raises ``GeneratorError``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from context_bundler.constants import (
    DEFAULT_GENERATOR_COMMAND,
    DEFAULT_GENERATOR_TIMEOUT_SECONDS,
)
from context_bundler.errors import GeneratorError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    template: str | None = None
    instruction: str | None = None


@runtime_checkable
class PromptGenerator(Protocol):
    """Produces a prompt document for ``files`` relative to ``cwd``."""

    async def generate(
        self, files: Sequence[str], options: GenerationOptions, cwd: Path
    ) -> str: ...


class PromptCodeGenerator:
    """Runs the ``promptcode`` CLI as a subprocess."""

    def __init__(
        self,
        command: str = DEFAULT_GENERATOR_COMMAND,
        *,
        timeout_seconds: float = DEFAULT_GENERATOR_TIMEOUT_SECONDS,
    ) -> None:
        if not command.strip():
            raise ValueError("command must be a non-empty string")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._command = command
        self._timeout_seconds = timeout_seconds

    @property
    def command(self) -> str:
        return self._command

    def build_args(self, files: Sequence[str], options: GenerationOptions) -> list[str]:
        args = [self._command, "generate"]
        for item in files:
            args.extend(["-f", item])
        if options.template:
            args.extend(["--template", options.template])
        if options.instruction:
            args.extend(["--instruction", options.instruction])
        return args

    async def generate(
        self, files: Sequence[str], options: GenerationOptions, cwd: Path
    ) -> str:
        args = self.build_args(files, options)
        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
            )
        except OSError as exc:
            raise GeneratorError(f"Failed to spawn PromptCode: {exc}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout_seconds
            )
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise GeneratorError(
                f"PromptCode timed out after {self._timeout_seconds} seconds"
            ) from exc

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        elapsed_ms = int((time.monotonic() - started) * 1000)
        _LOGGER.debug(
            "prompt generator finished",
            extra={
                "command": self._command,
                "exit_code": proc.returncode,
                "file_count": len(files),
                "elapsed_ms": elapsed_ms,
            },
        )

        if proc.returncode != 0:
            raise GeneratorError(f"PromptCode failed: {stderr or stdout}")
        return stdout


__all__ = ["GenerationOptions", "PromptCodeGenerator", "PromptGenerator"]
