"""
context-bundler — configuration schema and validation.

File: src/context_bundler/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Token ceilings never exceed the global maximum.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from context_bundler.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_COUNT_ENCODING,
    DEFAULT_DISCOVERY_PATTERNS,
    DEFAULT_ENCODING,
    DEFAULT_GENERATOR_COMMAND,
    DEFAULT_GENERATOR_TIMEOUT_SECONDS,
    DEFAULT_MAX_COUNT_TOKENS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TOKEN_CONCURRENCY,
    MAX_TOKENS_CEILING,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("repository", "root"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class RepositoryConfig(TypedDict):
    root: str


class DiscoveryConfig(TypedDict):
    patterns: list[str]
    max_depth: int
    extra_ignore_patterns: list[str]


class TokensConfig(TypedDict):
    default_encoding: str
    count_encoding: str
    max_tokens: int
    max_count_tokens: int
    concurrency: int


class GeneratorConfig(TypedDict):
    command: str
    timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_to_stderr: bool
    log_dir: NotRequired[str]


class BundlerConfig(TypedDict):
    meta: MetaConfig
    repository: RepositoryConfig
    discovery: DiscoveryConfig
    tokens: TokensConfig
    generator: GeneratorConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[BundlerConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "repository": {
        "root": ".",
    },
    "discovery": {
        "patterns": list(DEFAULT_DISCOVERY_PATTERNS),
        "max_depth": DEFAULT_MAX_DEPTH,
        "extra_ignore_patterns": [],
    },
    "tokens": {
        "default_encoding": DEFAULT_ENCODING,
        "count_encoding": DEFAULT_COUNT_ENCODING,
        "max_tokens": DEFAULT_MAX_TOKENS,
        "max_count_tokens": DEFAULT_MAX_COUNT_TOKENS,
        "concurrency": DEFAULT_TOKEN_CONCURRENCY,
    },
    "generator": {
        "command": DEFAULT_GENERATOR_COMMAND,
        "timeout_seconds": DEFAULT_GENERATOR_TIMEOUT_SECONDS,
    },
    "observability": {
        "log_level": "WARNING",
        "log_to_stderr": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> BundlerConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade bundler.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the context-bundler runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; neither input is mutated."""

    merged: dict[str, Any] = {key: copy.deepcopy(value) for key, value in base.items()}
    for key, value in overlay.items():
        if isinstance(value, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------

_Check = Callable[[object, str, _IssueCollector], Any]


@dataclass(frozen=True, slots=True)
class _Field:
    check: _Check
    required: bool = True


def _type_name(value: object) -> str:
    return type(value).__name__


def _text(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {_type_name(value)}")
        return None
    stripped = value.strip()
    if not stripped:
        issues.add(path, "must not be empty")
        return None
    if "\x00" in stripped:
        issues.add(path, "must not contain NUL bytes")
        return None
    return stripped


def _text_list(*, non_empty: bool) -> _Check:
    def check(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            issues.add(path, f"expected list of strings, got {_type_name(value)}")
            return None
        items = [_text(item, f"{path}[{index}]", issues) for index, item in enumerate(value)]
        if non_empty and not items:
            issues.add(path, "must contain at least one pattern")
            return None
        if any(item is None for item in items):
            return None
        return [item for item in items if item is not None]

    return check


def _integer(*, minimum: int, maximum: int | None = None) -> _Check:
    def check(value: object, path: str, issues: _IssueCollector) -> int | None:
        if isinstance(value, bool) or not isinstance(value, int):
            issues.add(path, f"expected integer, got {_type_name(value)}")
        elif value < minimum:
            issues.add(path, f"must be >= {minimum}")
        elif maximum is not None and value > maximum:
            issues.add(path, f"must be <= {maximum}")
        else:
            return value
        return None

    return check


def _seconds(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {_type_name(value)}")
    elif not math.isfinite(value):
        issues.add(path, "must be finite")
    elif value < _MIN_TIMEOUT_SECONDS:
        issues.add(path, f"must be >= {_MIN_TIMEOUT_SECONDS}")
    else:
        return float(value)
    return None


def _flag(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {_type_name(value)}")
    return None


def _log_level(value: object, path: str, issues: _IssueCollector) -> str | None:
    level = _text(value, path, issues)
    if level is None:
        return None
    level = level.upper()
    if level not in LOG_LEVELS:
        issues.add(path, f"invalid value {level!r}; expected one of: {', '.join(LOG_LEVELS)}")
        return None
    return level


_MIN_TIMEOUT_SECONDS: Final[float] = 0.001
_TOKEN_LIMIT = _integer(minimum=1, maximum=MAX_TOKENS_CEILING)

_SECTIONS: Final[dict[str, dict[str, _Field]]] = {
    "meta": {"schema_version": _Field(_integer(minimum=1))},
    "repository": {"root": _Field(_text)},
    "discovery": {
        "patterns": _Field(_text_list(non_empty=True)),
        "max_depth": _Field(_integer(minimum=1)),
        "extra_ignore_patterns": _Field(_text_list(non_empty=False)),
    },
    "tokens": {
        "default_encoding": _Field(_text),
        "count_encoding": _Field(_text),
        "max_tokens": _Field(_TOKEN_LIMIT),
        "max_count_tokens": _Field(_TOKEN_LIMIT),
        "concurrency": _Field(_integer(minimum=1)),
    },
    "generator": {
        "command": _Field(_text),
        "timeout_seconds": _Field(_seconds),
    },
    "observability": {
        "log_level": _Field(_log_level),
        "log_dir": _Field(_text, required=False),
        "log_to_stderr": _Field(_flag),
    },
}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the schema, collecting every issue.

    On success the result carries a normalized copy (strings stripped, the
    log level upper-cased).
    """

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {_type_name(config)}")
        return ConfigValidationResult(config=None, issues=issues.items())

    _check_keys(config, {name: _Field(_text) for name in _SECTIONS}, "", issues)
    normalized: dict[str, Any] = {}
    for section, fields in _SECTIONS.items():
        raw = config.get(section)
        if raw is None:
            continue
        if not isinstance(raw, Mapping):
            issues.add(section, f"expected object, got {_type_name(raw)}")
            continue
        _check_keys(raw, fields, section, issues)
        parsed: dict[str, Any] = {}
        for key, field in fields.items():
            if key in raw:
                value = field.check(raw[key], f"{section}.{key}", issues)
                if value is not None:
                    parsed[key] = value
        normalized[section] = parsed

    version = normalized.get("meta", {}).get("schema_version")
    if version is not None and version != ConfigSchemaVersion:
        issues.add("meta.schema_version", migration_guidance(version))

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return the normalized config or raise ``ConfigValidationError``."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _check_keys(
    payload: Mapping[Any, object],
    fields: Mapping[str, _Field],
    prefix: str,
    issues: _IssueCollector,
) -> None:
    def where(key: object) -> str:
        return f"{prefix}.{key}" if prefix else str(key)

    for key in payload:
        if key not in fields:
            issues.add(where(key), "unknown field")
    for key, field in fields.items():
        if field.required and key not in payload:
            issues.add(where(key), "missing required field")


__all__ = [
    "BundlerConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
