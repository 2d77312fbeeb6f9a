"""
context-bundler — bounded-depth file discovery

File: src/context_bundler/discovery/files.py

Purpose
- Enumerate repository files matching caller glob patterns, then filter them
  through the layered ignore rules.

Functional requirements
- Only regular files are returned; symlinks are neither followed nor returned.
- Recursion depth is bounded; heavy well-known directories are never entered.
- A failing pattern is logged and skipped; the others still contribute.
- Output is deduplicated and sorted by full relative path.

Non-functional requirements
- Each pattern walks only below its literal directory prefix.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from context_bundler.constants import (
    DEFAULT_MAX_DEPTH,
    TRAVERSAL_EXCLUDED_DIRECTORIES,
)
from context_bundler.discovery.globbing import GlobPattern, compile_glob
from context_bundler.discovery.ignore import IgnoreRuleSet

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PatternFailure:
    """A glob pattern that could not be enumerated."""

    pattern: str
    error: str


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    """Sorted discovery output plus the patterns that were skipped."""

    files: tuple[str, ...]
    failures: tuple[PatternFailure, ...] = ()


def discover_files(
    repo_root: Path | str,
    patterns: Sequence[str],
    ignore_rules: IgnoreRuleSet,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    excluded_directories: Iterable[str] = TRAVERSAL_EXCLUDED_DIRECTORIES,
) -> list[str]:
    """Return sorted, deduplicated, non-ignored relative file paths."""

    result = scan_files(
        repo_root,
        patterns,
        ignore_rules,
        max_depth=max_depth,
        excluded_directories=excluded_directories,
    )
    return list(result.files)


def scan_files(
    repo_root: Path | str,
    patterns: Sequence[str],
    ignore_rules: IgnoreRuleSet,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    excluded_directories: Iterable[str] = TRAVERSAL_EXCLUDED_DIRECTORIES,
) -> DiscoveryResult:
    """Like :func:`discover_files` but also reports per-pattern failures."""

    if max_depth <= 0:
        raise ValueError("max_depth must be > 0")

    root = Path(repo_root)
    excluded = frozenset(excluded_directories)
    candidates: set[str] = set()
    failures: list[PatternFailure] = []

    for pattern in patterns:
        try:
            compiled = compile_glob(pattern)
            matches = _enumerate_pattern(root, compiled, max_depth=max_depth, excluded=excluded)
        except (OSError, ValueError) as exc:
            _LOGGER.warning(
                "discovery pattern failed; skipping",
                extra={"pattern": pattern, "error": str(exc)},
            )
            failures.append(PatternFailure(pattern=str(pattern), error=str(exc)))
            continue
        candidates.update(matches)

    kept = sorted(path for path in candidates if not ignore_rules.is_ignored(path))
    _LOGGER.debug(
        "discovery complete",
        extra={
            "repo_root": str(root),
            "pattern_count": len(patterns),
            "candidate_count": len(candidates),
            "file_count": len(kept),
        },
    )
    return DiscoveryResult(files=tuple(kept), failures=tuple(failures))


def _enumerate_pattern(
    root: Path,
    pattern: GlobPattern,
    *,
    max_depth: int,
    excluded: frozenset[str],
) -> list[str]:
    base_parts = pattern.base.split("/") if pattern.base else []
    if any(part in excluded for part in base_parts):
        return []

    depth_limit = max_depth
    if pattern.max_segments is not None:
        depth_limit = min(depth_limit, pattern.max_segments)
    if len(base_parts) >= depth_limit:
        return []

    base_dir = root.joinpath(*base_parts)
    if base_dir.is_symlink() or not base_dir.is_dir():
        return []

    matches: list[str] = []
    stack: list[tuple[str, list[str]]] = [(str(base_dir), base_parts)]
    while stack:
        directory, parts = stack.pop()
        try:
            with os.scandir(directory) as iterator:
                entries = list(iterator)
        except OSError as exc:
            if parts == base_parts:
                raise
            _LOGGER.warning(
                "unreadable directory pruned from discovery",
                extra={"directory": "/".join(parts), "error": str(exc)},
            )
            continue

        for entry in entries:
            entry_parts = [*parts, entry.name]
            try:
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    if entry.name not in excluded and len(entry_parts) < depth_limit:
                        stack.append((entry.path, entry_parts))
                    continue
                if not entry.is_file(follow_symlinks=False):
                    continue
            except OSError:
                continue

            relative = "/".join(entry_parts)
            if pattern.matches(relative):
                matches.append(relative)

    return matches


__all__ = [
    "DiscoveryResult",
    "PatternFailure",
    "discover_files",
    "scan_files",
]
