"""
context-bundler — repository context engine

File: src/context_bundler/assembly/engine.py

Purpose
- Single facade over discovery, tree building, token counting, assembly and
  external generation for one active repository root.

Functional requirements
- The active root changes only after the new path is validated as an
  existing directory.
- The token cache is injected and shared for the engine's lifetime.
- Per-file failures surface as data on results; whole-call failures are
  reserved for a missing root/directory, malformed input and collaborator
  errors.

Non-functional requirements
- Blocking filesystem work runs in worker threads; per-file token counting is
  fanned out with bounded concurrency.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from context_bundler.assembly.assembler import ContextAssembler
from context_bundler.assembly.bundle import (
    ContextBundle,
    DirectoryEntry,
    DirectoryListing,
    FileListing,
    FileTokenReport,
    GeneratedContext,
    MetaPrompt,
    TextTokenCount,
)
from context_bundler.assembly.generator import (
    GenerationOptions,
    PromptCodeGenerator,
    PromptGenerator,
)
from context_bundler.constants import (
    DEFAULT_COUNT_ENCODING,
    DEFAULT_DISCOVERY_PATTERNS,
    DEFAULT_ENCODING,
    DEFAULT_MAX_COUNT_TOKENS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TOKEN_CONCURRENCY,
)
from context_bundler.discovery import resolve_ignore_rules, scan_files
from context_bundler.errors import (
    NoValidFilesError,
    NotFoundError,
    RepositoryNotFoundError,
    TokenLimitExceededError,
    UnknownEncodingError,
)
from context_bundler.file_tree import FileTreeNode, build_file_tree
from context_bundler.observability.logging import correlation_scope
from context_bundler.tokens import TiktokenTokenizer, TokenCache, Tokenizer
from context_bundler.utils.concurrency import map_with_concurrency
from context_bundler.utils.fs import is_within, relative_to_cwd, resolve_inside

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Tunables resolved from configuration."""

    patterns: tuple[str, ...] = DEFAULT_DISCOVERY_PATTERNS
    max_depth: int = DEFAULT_MAX_DEPTH
    extra_ignore_patterns: tuple[str, ...] = ()
    default_encoding: str = DEFAULT_ENCODING
    count_encoding: str = DEFAULT_COUNT_ENCODING
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_count_tokens: int = DEFAULT_MAX_COUNT_TOKENS
    concurrency: int = DEFAULT_TOKEN_CONCURRENCY

    def __post_init__(self) -> None:
        if self.max_depth <= 0:
            raise ValueError("max_depth must be > 0")
        if self.concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        if self.max_tokens <= 0 or self.max_count_tokens <= 0:
            raise ValueError("token limits must be > 0")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> EngineSettings:
        """Build settings from a validated config mapping (see ``context_bundler.config``)."""

        discovery = config.get("discovery", {})
        tokens = config.get("tokens", {})
        defaults = cls()
        return cls(
            patterns=tuple(discovery.get("patterns", defaults.patterns)),
            max_depth=discovery.get("max_depth", defaults.max_depth),
            extra_ignore_patterns=tuple(discovery.get("extra_ignore_patterns", ())),
            default_encoding=tokens.get("default_encoding", defaults.default_encoding),
            count_encoding=tokens.get("count_encoding", defaults.count_encoding),
            max_tokens=tokens.get("max_tokens", defaults.max_tokens),
            max_count_tokens=tokens.get("max_count_tokens", defaults.max_count_tokens),
            concurrency=tokens.get("concurrency", defaults.concurrency),
        )


class RepositoryContextEngine:
    """Owns the active repository root and serves every context operation."""

    def __init__(
        self,
        repo_root: Path | str | None = None,
        *,
        tokenizer: Tokenizer | None = None,
        token_cache: TokenCache | None = None,
        generator: PromptGenerator | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._tokenizer: Tokenizer = tokenizer or TiktokenTokenizer()
        self._token_cache = token_cache or TokenCache()
        self._generator: PromptGenerator = generator or PromptCodeGenerator()
        self._root = _validated_directory(Path.cwd() if repo_root is None else Path(repo_root))

    @property
    def repository_root(self) -> Path:
        return self._root

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def token_cache(self) -> TokenCache:
        return self._token_cache

    def change_root(self, path: Path | str) -> Path:
        """Validate ``path`` and make it the active repository root."""

        resolved = _validated_directory(Path(path))
        previous = self._root
        self._root = resolved
        _LOGGER.info(
            "repository root changed",
            extra={"previous_root": str(previous), "repo_root": str(resolved)},
        )
        return resolved

    def list_files(self, patterns: Sequence[str] | None = None) -> FileListing:
        """Discover files under the active root and build their tree."""

        effective = tuple(patterns) if patterns else self._settings.patterns
        rules = resolve_ignore_rules(self._root, self._settings.extra_ignore_patterns)
        result = scan_files(
            self._root,
            effective,
            rules,
            max_depth=self._settings.max_depth,
        )
        tree = build_file_tree(result.files)
        return FileListing(
            files=result.files,
            tree=tree.to_dict(),
            repo_path=relative_to_cwd(self._root),
            failed_patterns=tuple(item.pattern for item in result.failures),
        )

    def file_tree(self, patterns: Sequence[str] | None = None) -> FileTreeNode:
        return build_file_tree(self.list_files(patterns).files)

    async def assemble(
        self,
        files: Sequence[str],
        user_instructions: str,
        meta_prompts: Sequence[MetaPrompt] = (),
        encoding: str | None = None,
        max_tokens: int | None = None,
    ) -> ContextBundle:
        """Assemble the full prompt document for ``files``."""

        with correlation_scope(request_id=_request_id()):
            return await self._assembler().assemble(
                files,
                user_instructions,
                meta_prompts,
                encoding=encoding or self._settings.default_encoding,
                max_tokens=max_tokens or self._settings.max_tokens,
            )

    async def file_tokens(
        self, files: Sequence[str], encoding: str | None = None
    ) -> FileTokenReport:
        """
        Approximate budget: per-file cached counts summed.

        Missing files count zero and are listed; files whose counting raised
        are listed as failed and omitted from ``token_counts``.
        """

        resolved_encoding = encoding or self._settings.default_encoding
        self._tokenizer.count("", resolved_encoding)

        with correlation_scope(request_id=_request_id()):
            results = await map_with_concurrency(
                list(files),
                self._settings.concurrency,
                lambda relative: asyncio.to_thread(
                    self._count_file, relative, resolved_encoding
                ),
            )

            token_counts: dict[str, int] = {}
            missing: list[str] = []
            failed: list[str] = []
            for relative, outcome in zip(files, results, strict=True):
                if outcome is None:
                    failed.append(relative)
                    continue
                tokens, exists = outcome
                token_counts[relative] = tokens
                if not exists:
                    missing.append(relative)

            report = FileTokenReport(
                encoding=resolved_encoding,
                token_counts=token_counts,
                missing_files=tuple(missing),
                failed_files=tuple(failed),
            )
            _LOGGER.debug(
                "file tokens counted",
                extra={
                    "file_count": len(token_counts),
                    "missing_count": len(missing),
                    "failed_count": len(failed),
                    "total_tokens": report.total_tokens,
                    "cache_hits": self._token_cache.hits,
                    "cache_misses": self._token_cache.misses,
                },
            )
            return report

    def count_text(
        self,
        text: str,
        *,
        encoding: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> TextTokenCount:
        """Count tokens in ``text``; an explicit encoding takes precedence over ``model``."""

        started = time.perf_counter()
        limit = max_tokens or self._settings.max_count_tokens
        if encoding:
            count = self._tokenizer.count(text, encoding)
            resolved = encoding
        elif model:
            count_for_model = getattr(self._tokenizer, "count_for_model", None)
            if count_for_model is None:
                raise UnknownEncodingError(model, kind="model")
            count, resolved = count_for_model(text, model)
        else:
            resolved = self._settings.count_encoding
            count = self._tokenizer.count(text, resolved)

        if count > limit:
            raise TokenLimitExceededError(count, limit)

        return TextTokenCount(
            count=count,
            encoding=resolved,
            byte_count=len(text.encode("utf-8")),
            elapsed_ms=round((time.perf_counter() - started) * 1000),
        )

    def list_directories(self, path: Path | str | None = None) -> DirectoryListing:
        """List non-hidden child directories of ``path`` (default: the active root)."""

        base = Path(path).resolve() if path is not None else self._root
        if not base.exists():
            raise RepositoryNotFoundError(str(base))
        if not base.is_dir():
            raise NotFoundError(f"Not a directory: {base}")

        entries: list[DirectoryEntry] = []
        with os.scandir(base) as iterator:
            for entry in iterator:
                if entry.name.startswith("."):
                    continue
                if not entry.is_dir():
                    continue
                entries.append(DirectoryEntry(name=entry.name, path=str(base / entry.name)))
        entries.sort(key=lambda item: item.name)

        return DirectoryListing(
            current_path=str(base),
            parent_path=str(base.parent),
            directories=tuple(entries),
        )

    async def generate_context(
        self,
        files: Sequence[str],
        *,
        template: str | None = None,
        instruction: str | None = None,
        encoding: str | None = None,
        max_tokens: int | None = None,
    ) -> GeneratedContext:
        """Run the external generator over the existing subset of ``files``."""

        resolved_encoding = encoding or self._settings.default_encoding
        limit = max_tokens or self._settings.max_tokens

        present: list[str] = []
        missing: list[str] = []
        for relative in files:
            candidate = resolve_inside(self._root, relative)
            if candidate is not None and is_within(candidate, self._root) and candidate.exists():
                present.append(relative)
            else:
                missing.append(relative)
        if not present:
            raise NoValidFilesError()

        with correlation_scope(request_id=_request_id()):
            output = await self._generator.generate(
                present,
                GenerationOptions(template=template, instruction=instruction),
                self._root,
            )
            token_count = await asyncio.to_thread(
                self._tokenizer.count, output, resolved_encoding
            )
            _LOGGER.info(
                "external context generated",
                extra={
                    "file_count": len(present),
                    "missing_count": len(missing),
                    "token_count": token_count,
                },
            )

        return GeneratedContext(
            output=output,
            token_count=token_count,
            encoding=resolved_encoding,
            max_tokens=limit,
            files=tuple(present),
            missing_files=tuple(missing),
            repo_path=relative_to_cwd(self._root),
        )

    def _assembler(self) -> ContextAssembler:
        return ContextAssembler(
            self._root,
            self._tokenizer,
            patterns=self._settings.patterns,
            max_depth=self._settings.max_depth,
            extra_ignore_patterns=self._settings.extra_ignore_patterns,
            concurrency=self._settings.concurrency,
        )

    def _count_file(self, relative: str, encoding: str) -> tuple[int, bool]:
        candidate = resolve_inside(self._root, relative)
        if candidate is None or not is_within(candidate, self._root) or not candidate.is_file():
            return 0, False
        return self._token_cache.count(candidate, encoding, self._tokenizer), True


def _validated_directory(path: Path) -> Path:
    resolved = path.expanduser().resolve()
    if not resolved.is_dir():
        raise RepositoryNotFoundError(str(resolved))
    return resolved


def _request_id() -> str:
    return uuid.uuid4().hex[:12]


__all__ = ["EngineSettings", "RepositoryContextEngine"]
