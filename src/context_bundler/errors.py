"""
context-bundler — error taxonomy

File: src/context_bundler/errors.py

Purpose
- Typed failures shared by the engine, the CLI and its exit-code routing.

Taxonomy
- not-found: a requested root or directory does not exist.
- invalid-input: malformed caller payload; carries structured issues.
- collaborator failure: tokenizer or external generator rejected the call.

Per-file and per-pattern failures are never raised; they surface as data
(missing/skipped lists, zero counts) on the batch result.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class BundlerError(Exception):
    """Base class for all context-bundler failures."""


class NotFoundError(BundlerError):
    """A requested path does not exist."""


class RepositoryNotFoundError(NotFoundError):
    """The repository root (or a directory to browse) is missing."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Path does not exist: {path}")


class InvalidInputError(BundlerError, ValueError):
    """The caller supplied a malformed request."""


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class RequestValidationError(InvalidInputError):
    """Raised when a request payload fails validation."""

    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"Invalid request:\n{rendered}")

    def details(self) -> dict[str, list[str]]:
        """Return issues grouped by field path."""

        grouped: dict[str, list[str]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.path, []).append(issue.message)
        return grouped


class NoValidFilesError(InvalidInputError):
    """None of the requested files exist below the repository root."""

    def __init__(self) -> None:
        super().__init__("No valid files to process")


class CollaboratorError(BundlerError):
    """An external collaborator (tokenizer, generator) failed."""


class UnknownEncodingError(CollaboratorError, ValueError):
    """The tokenizer does not know the requested encoding or model."""

    def __init__(self, name: str, *, kind: str = "encoding") -> None:
        self.name = name
        self.kind = kind
        super().__init__(f"Unknown {kind}: {name!r}")


class TokenLimitExceededError(CollaboratorError):
    """A single text exceeded the caller's token ceiling."""

    def __init__(self, count: int, max_tokens: int) -> None:
        self.count = count
        self.max_tokens = max_tokens
        super().__init__(f"Token count {count} exceeds maxTokens {max_tokens}")


class GeneratorError(CollaboratorError):
    """The external prompt generator failed or could not be spawned."""


__all__ = [
    "BundlerError",
    "CollaboratorError",
    "GeneratorError",
    "InvalidInputError",
    "NoValidFilesError",
    "NotFoundError",
    "RepositoryNotFoundError",
    "RequestValidationError",
    "TokenLimitExceededError",
    "UnknownEncodingError",
    "ValidationIssue",
]
