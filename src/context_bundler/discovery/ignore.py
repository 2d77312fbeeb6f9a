"""
context-bundler — layered ignore rules

File: src/context_bundler/discovery/ignore.py

Purpose
- Merge built-in default patterns, the repository's ``.gitignore`` and
  caller-supplied extra patterns into a single matcher.

Functional requirements
- Built-in defaults exclude unconditionally; nothing re-includes them.
- Ignore-file and extra patterns follow gitignore semantics: evaluated in
  order, last match wins, ``!pattern`` re-includes.
- Matching uses forward-slash paths relative to the repository root.
- The ignore file is re-read on every resolution; absence is not an error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import pathspec

from context_bundler.constants import BUILTIN_IGNORE_PATTERNS, IGNORE_FILE_NAME
from context_bundler.utils.fs import read_optional_text

_LOGGER = logging.getLogger(__name__)

RuleSource = Literal["default", "ignore_file", "extra"]


@dataclass(frozen=True, slots=True)
class IgnoreRule:
    """One pattern line and the layer it came from."""

    pattern: str
    source: RuleSource

    @property
    def negated(self) -> bool:
        return self.pattern.startswith("!")


@dataclass(frozen=True, slots=True)
class IgnoreRuleSet:
    """Immutable matcher built from the three ignore layers."""

    rules: tuple[IgnoreRule, ...]
    _defaults: pathspec.PathSpec = field(repr=False, compare=False)
    _layered: pathspec.PathSpec = field(repr=False, compare=False)

    @classmethod
    def from_layers(
        cls,
        *,
        defaults: Sequence[str] = BUILTIN_IGNORE_PATTERNS,
        ignore_file_lines: Sequence[str] = (),
        extra_patterns: Sequence[str] = (),
    ) -> IgnoreRuleSet:
        rules: list[IgnoreRule] = []
        rules.extend(_rules_from_lines(defaults, "default"))
        rules.extend(_rules_from_lines(ignore_file_lines, "ignore_file"))
        rules.extend(_rules_from_lines(extra_patterns, "extra"))

        layered_lines = [*ignore_file_lines, *extra_patterns]
        return cls(
            rules=tuple(rules),
            _defaults=pathspec.GitIgnoreSpec.from_lines(list(defaults)),
            _layered=pathspec.GitIgnoreSpec.from_lines(layered_lines),
        )

    def rules_for(self, source: RuleSource) -> tuple[IgnoreRule, ...]:
        return tuple(rule for rule in self.rules if rule.source == source)

    def is_ignored(self, relative_path: str) -> bool:
        """Return whether ``relative_path`` is excluded."""

        normalized = normalize_relative_path(relative_path)
        if not normalized:
            return False
        if self._defaults.match_file(normalized):
            return True
        return bool(self._layered.match_file(normalized))

    def filter(self, relative_paths: Iterable[str]) -> list[str]:
        """Return the paths that are not ignored, in input order."""

        return [path for path in relative_paths if not self.is_ignored(path)]


def resolve_ignore_rules(
    repo_root: Path | str,
    extra_patterns: Sequence[str] = (),
    *,
    ignore_file_name: str = IGNORE_FILE_NAME,
    reader: Callable[[Path], str | None] | None = None,
) -> IgnoreRuleSet:
    """Build the ignore rule set for ``repo_root`` from a fresh ignore-file read."""

    reader = reader or read_ignore_file
    ignore_path = Path(repo_root) / ignore_file_name
    ignore_lines: list[str] = []
    try:
        content = reader(ignore_path)
    except (OSError, UnicodeDecodeError) as exc:
        _LOGGER.warning(
            "unable to read ignore file; continuing with defaults",
            extra={"ignore_file": str(ignore_path), "error": str(exc)},
        )
        content = None
    if content is not None:
        ignore_lines = content.splitlines()

    return IgnoreRuleSet.from_layers(
        ignore_file_lines=ignore_lines,
        extra_patterns=tuple(extra_patterns),
    )


def read_ignore_file(path: Path) -> str | None:
    """Return the ignore file text, or ``None`` when it does not exist."""

    return read_optional_text(path)


def normalize_relative_path(value: str) -> str:
    normalized = value.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def _rules_from_lines(lines: Iterable[str], source: RuleSource) -> list[IgnoreRule]:
    rules: list[IgnoreRule] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        rules.append(IgnoreRule(pattern=line, source=source))
    return rules


__all__ = [
    "IgnoreRule",
    "IgnoreRuleSet",
    "normalize_relative_path",
    "read_ignore_file",
    "resolve_ignore_rules",
]
