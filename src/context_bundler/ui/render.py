"""Output rendering abstraction for the context-bundler CLI.

File: src/context_bundler/ui/render.py

Purpose
- Provide a thin plain-text rendering layer for human-readable CLI output.

Functional requirements
- Output is deterministic; tables are column-aligned.
- The target stream is configurable so summaries can go to stderr while a
  generated prompt is written to stdout.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence


class CLIRenderer:
    """Thin CLI output renderer producing plain text."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capsys replacement of sys.stdout is honoured.
        return self._stream if self._stream is not None else sys.stdout

    def kv(self, key: str, value: object) -> None:
        """Print a key: value pair."""

        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def raw(self, content: str) -> None:
        """Write ``content`` exactly, without adding a newline."""

        self.stream.write(content)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._write(f"\n{title}")

    def warning(self, text: str) -> None:
        self._write(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        """Print a bulleted list."""

        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._write(f"  {_pad(list(headers))}")
        self._write(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._write(f"  {_pad(list(row))}")

    def _write(self, line: str) -> None:
        print(line, file=self.stream)


def create_renderer(*, verbose: bool = False, stream: TextIO | None = None) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
