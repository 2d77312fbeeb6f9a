"""
context-bundler — per-file token count cache

File: src/context_bundler/tokens/cache.py

Purpose
- Memoize per-file token counts keyed by absolute path, invalidated whenever
  the file's modification time, size or the requested encoding changes.

Functional requirements
- Hit: all of (mtime_ns, size, encoding) match; no read, no tokenization.
- Miss: read the full text, tokenize, replace the whole entry, return count.
- A file that cannot be stat'ed or read counts as zero.

Non-functional requirements
- The lock is held only around dictionary access, so different paths never
  wait on each other's reads or tokenization. Concurrent misses for the same
  path may both recompute; the last write wins.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from context_bundler.utils.fs import stat_or_none

if TYPE_CHECKING:
    from context_bundler.tokens.tokenizer import Tokenizer

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TokenCacheEntry:
    """Cached count and the file/encoding fingerprint it is valid for."""

    mtime_ns: int
    size: int
    encoding: str
    tokens: int

    def matches(self, stat: os.stat_result, encoding: str) -> bool:
        return (
            self.mtime_ns == stat.st_mtime_ns
            and self.size == stat.st_size
            and self.encoding == encoding
        )


class TokenCache:
    """Process-lifetime token count cache; construct once and inject."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, TokenCacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def hits(self) -> int:
        with self._lock:
            return self._hits

    @property
    def misses(self) -> int:
        with self._lock:
            return self._misses

    def get(self, path: Path | str) -> TokenCacheEntry | None:
        with self._lock:
            return self._entries.get(_cache_key(path))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def count(self, path: Path | str, encoding: str, tokenizer: Tokenizer) -> int:
        """Return the token count of the file at absolute ``path``."""

        key = _cache_key(path)
        stat = stat_or_none(key)
        if stat is None:
            return 0

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None and cached.matches(stat, encoding):
                self._hits += 1
                return cached.tokens
            self._misses += 1

        try:
            with open(key, encoding="utf-8", newline="") as handle:
                content = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            _LOGGER.warning(
                "unable to read file for token counting",
                extra={"path": key, "error": str(exc)},
            )
            return 0

        tokens = tokenizer.count(content, encoding)
        entry = TokenCacheEntry(
            mtime_ns=stat.st_mtime_ns,
            size=stat.st_size,
            encoding=encoding,
            tokens=tokens,
        )
        with self._lock:
            self._entries[key] = entry
        return tokens


def _cache_key(path: Path | str) -> str:
    return os.fspath(path)


__all__ = ["TokenCache", "TokenCacheEntry"]
