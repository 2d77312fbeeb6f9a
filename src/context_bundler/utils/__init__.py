"""Utility exports for filesystem and concurrency helpers."""

from context_bundler.utils.concurrency import (
    map_with_concurrency,
    run_with_timeout,
)
from context_bundler.utils.fs import (
    is_within,
    read_optional_text,
    relative_to_cwd,
    resolve_inside,
    stat_or_none,
    to_posix_relative,
)

__all__ = [
    "is_within",
    "map_with_concurrency",
    "read_optional_text",
    "relative_to_cwd",
    "resolve_inside",
    "run_with_timeout",
    "stat_or_none",
    "to_posix_relative",
]
