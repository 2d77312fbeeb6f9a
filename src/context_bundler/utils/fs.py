"""
context-bundler — filesystem utilities

File: src/context_bundler/utils/fs.py

Purpose
- Small, failure-tolerant filesystem helpers shared by discovery, the token
  cache and the assembler.

Functional requirements
- Reads and stats never raise for missing files; callers get ``None``.
- Containment checks refuse paths that resolve outside the repository root.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

PathLike = str | os.PathLike[str]

__all__ = [
    "is_within",
    "read_optional_text",
    "relative_to_cwd",
    "resolve_inside",
    "stat_or_none",
    "to_posix_relative",
]


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if resolved ``child`` is within resolved ``parent``."""

    try:
        resolved_parent = Path(parent).resolve(strict=True)
    except (FileNotFoundError, NotADirectoryError):
        return False
    if not resolved_parent.is_dir():
        return False

    resolved_child = Path(child).resolve(strict=False)
    return _is_relative_to(resolved_child, resolved_parent)


def resolve_inside(root: Path, relative: str) -> Path | None:
    """
    Join ``relative`` onto ``root`` and return it if it stays inside ``root``.

    The returned path is the lexical join (symlinks are not resolved) so
    callers can still detect and reject symlinked entries themselves.
    """

    if not relative or relative.startswith(("/", "\\")):
        return None
    candidate = root / relative
    normalized = Path(os.path.normpath(candidate))
    if not _is_relative_to(normalized, Path(os.path.normpath(root))):
        return None
    return candidate


def stat_or_none(path: PathLike) -> os.stat_result | None:
    """Return ``os.stat`` of ``path`` or ``None`` when it cannot be stat'ed."""

    try:
        return os.stat(path)
    except OSError:
        return None


def read_optional_text(path: PathLike, *, encoding: str = "utf-8") -> str | None:
    """Return file text, or ``None`` if the file does not exist."""

    try:
        with open(path, encoding=encoding) as handle:
            return handle.read()
    except FileNotFoundError:
        return None


def to_posix_relative(path: Path, root: Path) -> str:
    """Return ``path`` relative to ``root`` with forward-slash separators."""

    return PurePosixPath(*path.relative_to(root).parts).as_posix()


def relative_to_cwd(path: PathLike) -> str:
    """Return ``path`` relative to the process working directory."""

    try:
        return os.path.relpath(path, os.getcwd())
    except ValueError:
        return os.fspath(path)


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
