"""
context-bundler config package public API.

File: src/context_bundler/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``bundler.toml`` + ``BUNDLER_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from context_bundler.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_BINDINGS,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    env_var_name,
    load_config,
    normalize_paths,
)
from context_bundler.config.schema import (
    DEFAULT_CONFIG,
    LOG_LEVELS,
    PATH_FIELDS,
    BundlerConfig,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "BundlerConfig",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_BINDINGS",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "validate_config",
]
