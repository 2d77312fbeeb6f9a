"""
context-bundler — caller payload validation

File: src/context_bundler/assembly/requests.py

Purpose
- Validate loosely-typed caller payloads (decoded JSON/YAML) into typed
  requests before they reach the engine.

Functional requirements
- Collect every issue with its field path, then raise once.
- ``maxTokens`` must be a positive integer no larger than the ceiling.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from context_bundler.assembly.bundle import MetaPrompt
from context_bundler.constants import MAX_TOKENS_CEILING
from context_bundler.errors import RequestValidationError, ValidationIssue


@dataclass(frozen=True, slots=True)
class AssembleRequest:
    """Validated input for :meth:`RepositoryContextEngine.assemble`."""

    files: tuple[str, ...]
    user_instructions: str
    meta_prompts: tuple[MetaPrompt, ...] = ()
    encoding: str | None = None
    max_tokens: int | None = None


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ValidationIssue(path=path, message=message))

    def items(self) -> tuple[ValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def parse_assemble_request(payload: object) -> AssembleRequest:
    """Validate an assemble payload shaped like the JSON request body."""

    issues = _IssueCollector()
    if not isinstance(payload, Mapping):
        raise RequestValidationError((ValidationIssue("<root>", "expected an object"),))

    known = {"files", "userInstructions", "metaPrompts", "encoding", "maxTokens"}
    for key in sorted(str(item) for item in payload if item not in known):
        issues.add(key, "unknown field")

    files = _string_list(payload.get("files"), "files", issues, required=True)
    instructions = payload.get("userInstructions")
    if not isinstance(instructions, str):
        issues.add("userInstructions", "required string")
        instructions = ""

    meta_prompts: tuple[MetaPrompt, ...] = ()
    if payload.get("metaPrompts") is not None:
        meta_prompts = _meta_prompts(payload["metaPrompts"], "metaPrompts", issues)

    encoding = _optional_str(payload.get("encoding"), "encoding", issues)
    max_tokens = _optional_max_tokens(payload.get("maxTokens"), "maxTokens", issues)

    if issues.has_issues:
        raise RequestValidationError(issues.items())

    return AssembleRequest(
        files=tuple(files),
        user_instructions=instructions,
        meta_prompts=meta_prompts,
        encoding=encoding,
        max_tokens=max_tokens,
    )


def parse_meta_prompts(payload: object) -> tuple[MetaPrompt, ...]:
    """
    Validate meta prompts given either as ``[{name, content}, ...]`` or as a
    ``{name: content}`` mapping (mapping order is preserved).
    """

    issues = _IssueCollector()
    parsed = _meta_prompts(payload, "metaPrompts", issues)
    if issues.has_issues:
        raise RequestValidationError(issues.items())
    return parsed


def validate_max_tokens(value: object, *, field_name: str = "maxTokens") -> int:
    """Return ``value`` if it is a valid token ceiling, else raise."""

    issues = _IssueCollector()
    parsed = _optional_max_tokens(value, field_name, issues)
    if parsed is None and not issues.has_issues:
        issues.add(field_name, "required integer")
    if issues.has_issues or parsed is None:
        raise RequestValidationError(issues.items())
    return parsed


def _meta_prompts(
    value: object, path: str, issues: _IssueCollector
) -> tuple[MetaPrompt, ...]:
    if isinstance(value, Mapping):
        prompts: list[MetaPrompt] = []
        for name, content in value.items():
            if not isinstance(name, str) or not isinstance(content, str):
                issues.add(f"{path}.{name}", "meta prompt name and content must be strings")
                continue
            prompts.append(MetaPrompt(name=name, content=content))
        return tuple(prompts)

    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        issues.add(path, "expected a list of {name, content} objects or a mapping")
        return ()

    prompts = []
    for index, item in enumerate(value):
        item_path = f"{path}[{index}]"
        if not isinstance(item, Mapping):
            issues.add(item_path, "expected an object")
            continue
        name = item.get("name")
        content = item.get("content")
        if not isinstance(name, str):
            issues.add(f"{item_path}.name", "required string")
        if not isinstance(content, str):
            issues.add(f"{item_path}.content", "required string")
        if isinstance(name, str) and isinstance(content, str):
            prompts.append(MetaPrompt(name=name, content=content))
    return tuple(prompts)


def _string_list(
    value: object, path: str, issues: _IssueCollector, *, required: bool
) -> list[str]:
    if value is None:
        if required:
            issues.add(path, "required list of strings")
        return []
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        issues.add(path, "expected a list of strings")
        return []
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            issues.add(f"{path}[{index}]", "expected a string")
            continue
        items.append(item)
    return items


def _optional_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        issues.add(path, "expected a non-empty string")
        return None
    return value.strip()


def _optional_max_tokens(value: object, path: str, issues: _IssueCollector) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, "expected an integer")
        return None
    if value <= 0:
        issues.add(path, "must be > 0")
        return None
    if value > MAX_TOKENS_CEILING:
        issues.add(path, f"must be <= {MAX_TOKENS_CEILING}")
        return None
    return value


__all__ = [
    "AssembleRequest",
    "parse_assemble_request",
    "parse_meta_prompts",
    "validate_max_tokens",
]
