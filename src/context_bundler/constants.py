"""Stable constants shared across the discovery, token and assembly layers."""

from __future__ import annotations

from typing import Final

CONFIG_SCHEMA_VERSION: Final[int] = 1

# Token accounting.
DEFAULT_ENCODING: Final[str] = "cl100k_base"
DEFAULT_COUNT_ENCODING: Final[str] = "o200k_base"
DEFAULT_MAX_TOKENS: Final[int] = 128_000
DEFAULT_MAX_COUNT_TOKENS: Final[int] = 1_000_000
MAX_TOKENS_CEILING: Final[int] = 1_000_000
DEFAULT_TOKEN_CONCURRENCY: Final[int] = 16
KNOWN_ENCODINGS: Final[tuple[str, ...]] = (
    "o200k_base",
    "cl100k_base",
    "p50k_base",
    "p50k_edit",
    "r50k_base",
    "gpt2",
)

# Discovery.
DEFAULT_DISCOVERY_PATTERNS: Final[tuple[str, ...]] = ("**/*",)
DEFAULT_MAX_DEPTH: Final[int] = 10
IGNORE_FILE_NAME: Final[str] = ".gitignore"

# Always excluded, before any ignore-file or caller pattern is consulted.
BUILTIN_IGNORE_PATTERNS: Final[tuple[str, ...]] = (
    "node_modules/",
    ".git/",
    ".DS_Store",
    "*.log",
    "dist/",
    "build/",
    "coverage/",
    ".nyc_output/",
    "*.tmp",
    "*.temp",
    "__pycache__/",
    "*.pyc",
    ".pytest_cache/",
)

# Directory names never descended into during enumeration.
TRAVERSAL_EXCLUDED_DIRECTORIES: Final[frozenset[str]] = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        ".next",
        "coverage",
        "__pycache__",
        "venv",
        "target",
        ".turbo",
        ".yarn",
        "bower_components",
        ".cache",
        ".npm",
        ".pnpm",
    }
)

# External prompt generator.
DEFAULT_GENERATOR_COMMAND: Final[str] = "promptcode"
DEFAULT_GENERATOR_TIMEOUT_SECONDS: Final[float] = 120.0

__all__ = [
    "BUILTIN_IGNORE_PATTERNS",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_COUNT_ENCODING",
    "DEFAULT_DISCOVERY_PATTERNS",
    "DEFAULT_ENCODING",
    "DEFAULT_GENERATOR_COMMAND",
    "DEFAULT_GENERATOR_TIMEOUT_SECONDS",
    "DEFAULT_MAX_COUNT_TOKENS",
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TOKEN_CONCURRENCY",
    "IGNORE_FILE_NAME",
    "KNOWN_ENCODINGS",
    "MAX_TOKENS_CEILING",
    "TRAVERSAL_EXCLUDED_DIRECTORIES",
]
