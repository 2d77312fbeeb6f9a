"""Repository file discovery: layered ignore rules, glob compilation and enumeration."""

from context_bundler.discovery.files import (
    DiscoveryResult,
    PatternFailure,
    discover_files,
    scan_files,
)
from context_bundler.discovery.globbing import GlobPattern, GlobPatternError, compile_glob
from context_bundler.discovery.ignore import (
    IgnoreRule,
    IgnoreRuleSet,
    normalize_relative_path,
    read_ignore_file,
    resolve_ignore_rules,
)

__all__ = [
    "DiscoveryResult",
    "GlobPattern",
    "GlobPatternError",
    "IgnoreRule",
    "IgnoreRuleSet",
    "PatternFailure",
    "compile_glob",
    "discover_files",
    "normalize_relative_path",
    "read_ignore_file",
    "resolve_ignore_rules",
    "scan_files",
]
