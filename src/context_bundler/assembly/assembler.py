"""
context-bundler — context document assembler

File: src/context_bundler/assembly/assembler.py

Purpose
- Produce the structured prompt document for a set of requested files and
  count its tokens once.

Document layout
- ``<file_map>``: absolute repository root, then the rendered tree of every
  discovered file (not only the requested ones).
- ``<file_contents>``: one fenced block per readable requested file, in the
  caller's order. Content is inserted verbatim; embedded fences are not
  escaped.
- ``<meta prompt N = "name">`` blocks, numbered from 1.
- ``<user_instructions>``.

Failure handling
- Missing, non-file or outside-root requests are listed in ``missing_files``.
- Unreadable or non-UTF-8 files are logged and listed in ``skipped_files``.
- Neither aborts assembly.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from context_bundler.assembly.bundle import ContextBundle, MetaPrompt
from context_bundler.constants import (
    DEFAULT_DISCOVERY_PATTERNS,
    DEFAULT_ENCODING,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TOKEN_CONCURRENCY,
)
from context_bundler.discovery import discover_files, resolve_ignore_rules
from context_bundler.file_tree import format_file_tree
from context_bundler.utils.concurrency import map_with_concurrency
from context_bundler.utils.fs import is_within, relative_to_cwd, resolve_inside

if TYPE_CHECKING:
    from context_bundler.tokens.tokenizer import Tokenizer

_LOGGER = logging.getLogger(__name__)

FENCE = "```"


class _ReadOutcome(enum.Enum):
    READ = "read"
    MISSING = "missing"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class _RequestedFile:
    relative_path: str
    outcome: _ReadOutcome
    content: str = ""


class ContextAssembler:
    """Builds :class:`ContextBundle` documents below one repository root."""

    def __init__(
        self,
        repo_root: Path,
        tokenizer: Tokenizer,
        *,
        patterns: Sequence[str] = DEFAULT_DISCOVERY_PATTERNS,
        max_depth: int = DEFAULT_MAX_DEPTH,
        extra_ignore_patterns: Sequence[str] = (),
        concurrency: int = DEFAULT_TOKEN_CONCURRENCY,
    ) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        self._root = Path(repo_root)
        self._tokenizer = tokenizer
        self._patterns = tuple(patterns)
        self._max_depth = max_depth
        self._extra_ignore_patterns = tuple(extra_ignore_patterns)
        self._concurrency = concurrency

    @property
    def repo_root(self) -> Path:
        return self._root

    def list_repository_files(self) -> list[str]:
        rules = resolve_ignore_rules(self._root, self._extra_ignore_patterns)
        return discover_files(
            self._root,
            self._patterns,
            rules,
            max_depth=self._max_depth,
        )

    async def assemble(
        self,
        files: Sequence[str],
        user_instructions: str,
        meta_prompts: Sequence[MetaPrompt] = (),
        encoding: str = DEFAULT_ENCODING,
        max_tokens: int | None = None,
    ) -> ContextBundle:
        """Assemble the document for ``files`` and count its tokens."""

        # Surface an unknown encoding before any file is read.
        self._tokenizer.count("", encoding)
        limit = DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens

        all_files = await asyncio.to_thread(self.list_repository_files)
        requested = await map_with_concurrency(
            list(files),
            self._concurrency,
            lambda relative: asyncio.to_thread(self._read_requested, relative),
        )

        included: list[_RequestedFile] = []
        missing: list[str] = []
        skipped: list[str] = []
        for relative, item in zip(files, requested, strict=True):
            if item is None or item.outcome is _ReadOutcome.SKIPPED:
                skipped.append(relative)
            elif item.outcome is _ReadOutcome.MISSING:
                missing.append(relative)
            else:
                included.append(item)

        prompt = render_document(
            root=str(self._root),
            tree=format_file_tree(all_files),
            contents=[(item.relative_path, item.content) for item in included],
            meta_prompts=meta_prompts,
            user_instructions=user_instructions,
        )
        token_count = await asyncio.to_thread(self._tokenizer.count, prompt, encoding)

        bundle = ContextBundle(
            prompt=prompt,
            token_count=token_count,
            encoding=encoding,
            max_tokens=limit,
            files=tuple(item.relative_path for item in included),
            missing_files=tuple(missing),
            skipped_files=tuple(skipped),
            total_files=len(all_files),
            meta_prompt_count=len(meta_prompts),
            repo_path=relative_to_cwd(self._root),
        )
        _LOGGER.info(
            "context assembled",
            extra={
                "file_count": bundle.file_count,
                "missing_count": len(missing),
                "skipped_count": len(skipped),
                "token_count": token_count,
                "max_tokens": limit,
                "over_limit": bundle.is_over_limit,
            },
        )
        return bundle

    def _read_requested(self, relative: str) -> _RequestedFile:
        candidate = resolve_inside(self._root, relative)
        if candidate is None or not is_within(candidate, self._root):
            return _RequestedFile(relative, _ReadOutcome.MISSING)
        if not candidate.is_file():
            return _RequestedFile(relative, _ReadOutcome.MISSING)
        try:
            with open(candidate, encoding="utf-8", newline="") as handle:
                content = handle.read()
        except FileNotFoundError:
            return _RequestedFile(relative, _ReadOutcome.MISSING)
        except (OSError, UnicodeDecodeError) as exc:
            _LOGGER.warning(
                "skipping unreadable file",
                extra={"path": relative, "error": str(exc)},
            )
            return _RequestedFile(relative, _ReadOutcome.SKIPPED)
        return _RequestedFile(relative, _ReadOutcome.READ, content)


def render_document(
    *,
    root: str,
    tree: str,
    contents: Sequence[tuple[str, str]],
    meta_prompts: Sequence[MetaPrompt],
    user_instructions: str,
) -> str:
    """Render the prompt document from already-read parts."""

    parts: list[str] = ["<file_map>\n", root, "\n", tree, "</file_map>\n\n"]

    parts.append("<file_contents>\n")
    for relative, content in contents:
        parts.append(f"File: {relative}\n{FENCE}\n{content}\n{FENCE}\n\n")
    parts.append("</file_contents>\n\n")

    for index, prompt in enumerate(meta_prompts, start=1):
        parts.append(
            f'<meta prompt {index} = "{prompt.name}">\n'
            f"{prompt.content}\n"
            f"</meta prompt {index}>\n\n"
        )

    parts.append(f"<user_instructions>\n{user_instructions}\n</user_instructions>\n")
    return "".join(parts)


__all__ = ["ContextAssembler", "render_document"]
