"""
context-bundler — unit tests for config schema validation

File: tests/unit/config/test_schema.py

Purpose
- Validate defaults, strict field checking and deterministic merging.

What this test file should cover
- Defaults validate cleanly.
- Unknown and missing fields, bad types and out-of-range limits produce
  structured issues with dotted paths.
- Schema version mismatches carry migration guidance.
"""

from __future__ import annotations

import pytest

from context_bundler.config import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)


def _issues(config: object) -> dict[str, str]:
    result = validate_config(config)
    return {issue.path: issue.message for issue in result.issues}


def test_default_config_is_valid_and_copied() -> None:
    first = default_config()
    first["tokens"]["max_tokens"] = 1

    result = validate_config(default_config())

    assert result.is_valid
    assert result.config == default_config()
    assert DEFAULT_CONFIG["tokens"]["max_tokens"] != 1


def test_unknown_fields_are_rejected_at_every_level() -> None:
    config = default_config()
    config["tokens"]["bogus"] = 1  # type: ignore[typeddict-unknown-key]
    config["extra_section"] = {}  # type: ignore[typeddict-unknown-key]

    issues = _issues(config)

    assert issues["tokens.bogus"] == "unknown field"
    assert issues["extra_section"] == "unknown field"


def test_missing_required_fields_are_reported() -> None:
    config = default_config()
    del config["tokens"]["concurrency"]  # type: ignore[misc]

    assert _issues(config) == {"tokens.concurrency": "missing required field"}


@pytest.mark.parametrize(
    ("key", "value", "message"),
    [
        ("max_tokens", 0, "must be >= 1"),
        ("max_tokens", 1_000_001, "must be <= 1000000"),
        ("max_count_tokens", True, "expected integer, got bool"),
        ("concurrency", 0, "must be >= 1"),
        ("default_encoding", "", "must not be empty"),
    ],
)
def test_token_section_constraints(key: str, value: object, message: str) -> None:
    config = default_config()
    config["tokens"][key] = value  # type: ignore[literal-required]

    assert _issues(config) == {f"tokens.{key}": message}


def test_discovery_patterns_must_be_non_empty_strings() -> None:
    empty = default_config()
    empty["discovery"]["patterns"] = []
    mixed = default_config()
    mixed["discovery"]["patterns"] = ["**/*", 7]  # type: ignore[list-item]

    assert _issues(empty) == {"discovery.patterns": "must contain at least one pattern"}
    assert _issues(mixed) == {"discovery.patterns[1]": "expected string, got int"}


def test_log_level_is_normalized_and_checked() -> None:
    lower = default_config()
    lower["observability"]["log_level"] = " debug "  # type: ignore[typeddict-item]
    invalid = default_config()
    invalid["observability"]["log_level"] = "LOUD"  # type: ignore[typeddict-item]

    assert assert_valid_config(lower)["observability"]["log_level"] == "DEBUG"
    assert "invalid value 'LOUD'" in _issues(invalid)["observability.log_level"]


def test_schema_version_mismatch_includes_guidance() -> None:
    config = default_config()
    config["meta"]["schema_version"] = 2

    assert "newer than supported" in _issues(config)["meta.schema_version"]
    assert "older than supported" in migration_guidance(0)
    assert migration_guidance(1) == "schema version is current"


def test_non_object_root_is_rejected() -> None:
    assert _issues(["not", "a", "mapping"]) == {"<root>": "expected object, got list"}


def test_assert_valid_config_renders_all_issues() -> None:
    config = default_config()
    config["generator"]["timeout_seconds"] = 0
    config["repository"]["root"] = "   "

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    message = str(excinfo.value)
    assert message.startswith("invalid config:\n")
    assert "- generator.timeout_seconds: must be >= 0.001" in message
    assert "- repository.root: must not be empty" in message
    assert len(excinfo.value.issues) == 2


def test_merge_is_deep_and_does_not_mutate_inputs() -> None:
    base = default_config()
    overlay = {"tokens": {"max_tokens": 10}, "discovery": {"patterns": ["a/*"]}}

    merged = merge_config(base, overlay)

    assert merged["tokens"]["max_tokens"] == 10
    assert merged["tokens"]["concurrency"] == base["tokens"]["concurrency"]
    assert merged["discovery"]["patterns"] == ["a/*"]
    assert base["tokens"]["max_tokens"] == DEFAULT_CONFIG["tokens"]["max_tokens"]
    merged["discovery"]["patterns"].append("b/*")
    assert overlay["discovery"]["patterns"] == ["a/*"]
