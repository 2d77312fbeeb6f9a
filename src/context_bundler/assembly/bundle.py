"""Result types returned by the context engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class MetaPrompt:
    """Named caller-supplied fragment inserted between contents and instructions."""

    name: str
    content: str


@dataclass(frozen=True, slots=True)
class ContextBundle:
    """
    Fully assembled prompt document.

    ``token_count`` is the authoritative count: the whole ``prompt`` text
    tokenized once. It is not the sum of per-file counts.
    """

    prompt: str
    token_count: int
    encoding: str
    max_tokens: int
    files: tuple[str, ...]
    missing_files: tuple[str, ...]
    skipped_files: tuple[str, ...]
    total_files: int
    meta_prompt_count: int
    repo_path: str

    @property
    def is_over_limit(self) -> bool:
        return self.token_count > self.max_tokens

    @property
    def file_count(self) -> int:
        return len(self.files)

    def to_payload(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "tokenCount": self.token_count,
            "encoding": self.encoding,
            "maxTokens": self.max_tokens,
            "isOverLimit": self.is_over_limit,
            "fileCount": self.file_count,
            "files": list(self.files),
            "missingFiles": list(self.missing_files),
            "skippedFiles": list(self.skipped_files),
            "totalFiles": self.total_files,
            "metaPromptCount": self.meta_prompt_count,
            "repoPath": self.repo_path,
        }


@dataclass(frozen=True, slots=True)
class FileTokenReport:
    """
    Approximate budget view: the sum of independently cached per-file counts.

    Omits the structural text a bundle adds, so ``total_tokens`` is expected
    to be lower than :attr:`ContextBundle.token_count` for the same files.
    """

    encoding: str
    token_counts: dict[str, int]
    missing_files: tuple[str, ...] = ()
    failed_files: tuple[str, ...] = ()
    cached: bool = True

    @property
    def total_tokens(self) -> int:
        return sum(self.token_counts.values())

    def to_payload(self) -> dict[str, Any]:
        return {
            "encoding": self.encoding,
            "tokenCounts": dict(self.token_counts),
            "totalTokens": self.total_tokens,
            "missingFiles": list(self.missing_files),
            "failedFiles": list(self.failed_files),
            "cached": self.cached,
        }


@dataclass(frozen=True, slots=True)
class TextTokenCount:
    """Token count for an ad-hoc text."""

    count: int
    encoding: str
    byte_count: int
    elapsed_ms: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "encoding": self.encoding,
            "bytes": self.byte_count,
            "elapsedMs": self.elapsed_ms,
        }


@dataclass(frozen=True, slots=True)
class FileListing:
    """Discovered files plus their tree."""

    files: tuple[str, ...]
    tree: dict[str, Any]
    repo_path: str
    failed_patterns: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "files": list(self.files),
            "tree": self.tree,
            "repoPath": self.repo_path,
            "failedPatterns": list(self.failed_patterns),
        }


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    name: str
    path: str


@dataclass(frozen=True, slots=True)
class DirectoryListing:
    """Non-hidden child directories of ``current_path``."""

    current_path: str
    parent_path: str
    directories: tuple[DirectoryEntry, ...] = field(default_factory=tuple)

    @property
    def can_go_up(self) -> bool:
        return self.current_path != self.parent_path

    def to_payload(self) -> dict[str, Any]:
        return {
            "currentPath": self.current_path,
            "parentPath": self.parent_path,
            "directories": [{"name": item.name, "path": item.path} for item in self.directories],
            "canGoUp": self.can_go_up,
        }


@dataclass(frozen=True, slots=True)
class GeneratedContext:
    """Output of the external prompt generator, re-counted locally."""

    output: str
    token_count: int
    encoding: str
    max_tokens: int
    files: tuple[str, ...]
    missing_files: tuple[str, ...]
    repo_path: str

    @property
    def is_over_limit(self) -> bool:
        return self.token_count > self.max_tokens

    @property
    def file_count(self) -> int:
        return len(self.files)

    def to_payload(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "tokenCount": self.token_count,
            "encoding": self.encoding,
            "fileCount": self.file_count,
            "isOverLimit": self.is_over_limit,
            "maxTokens": self.max_tokens,
            "files": list(self.files),
            "missingFiles": list(self.missing_files),
            "repoPath": self.repo_path,
        }


__all__ = [
    "ContextBundle",
    "DirectoryEntry",
    "DirectoryListing",
    "FileListing",
    "FileTokenReport",
    "GeneratedContext",
    "MetaPrompt",
    "TextTokenCount",
]
