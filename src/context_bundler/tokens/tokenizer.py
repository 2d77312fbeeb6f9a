"""
context-bundler — tokenizer adapter

File: src/context_bundler/tokens/tokenizer.py

Purpose
- Define the tokenizer boundary used by the token cache and the assembler,
  and provide the default ``tiktoken``-backed implementation.

Functional requirements
- Deterministic counts for identical (text, encoding) pairs.
- Special-token-like substrings are counted as ordinary text.
- Unknown encodings or models raise ``UnknownEncodingError``.

Non-functional requirements
- Encoders are constructed once per name and reused across calls.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import tiktoken

from context_bundler.errors import UnknownEncodingError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tiktoken import Encoding


@runtime_checkable
class Tokenizer(Protocol):
    """Counts tokens for a text under a named encoding."""

    def count(self, text: str, encoding: str) -> int: ...


class TiktokenTokenizer:
    """``tiktoken`` adapter with a per-name encoder cache."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._encoders: dict[str, Encoding] = {}

    def count(self, text: str, encoding: str) -> int:
        return len(self._encode(self.encoder(encoding), text))

    def count_for_model(self, text: str, model: str) -> tuple[int, str]:
        """Count under the encoding ``tiktoken`` associates with ``model``."""

        encoder = self.encoder_for_model(model)
        return len(self._encode(encoder, text)), encoder.name

    def encoder(self, name: str) -> Encoding:
        return self._cached(name, lambda: _get_encoding(name))

    def encoder_for_model(self, model: str) -> Encoding:
        return self._cached(f"model:{model}", lambda: _encoding_for_model(model))

    def _cached(self, key: str, factory: Callable[[], Encoding]) -> Encoding:
        with self._lock:
            cached = self._encoders.get(key)
        if cached is not None:
            return cached
        created: Encoding = factory()
        with self._lock:
            return self._encoders.setdefault(key, created)

    @staticmethod
    def _encode(encoder: Encoding, text: str) -> list[int]:
        return encoder.encode(text, allowed_special=set(), disallowed_special=())


def _get_encoding(name: str) -> Encoding:
    try:
        return tiktoken.get_encoding(name)
    except (KeyError, ValueError) as exc:
        raise UnknownEncodingError(name) from exc


def _encoding_for_model(model: str) -> Encoding:
    try:
        return tiktoken.encoding_for_model(model)
    except (KeyError, ValueError) as exc:
        raise UnknownEncodingError(model, kind="model") from exc


__all__ = ["TiktokenTokenizer", "Tokenizer"]
