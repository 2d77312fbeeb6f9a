"""
context-bundler — runtime config loader.

File: src/context_bundler/config/loader.py

Purpose
- Produce the effective config for one CLI invocation from four layers:
  built-in defaults, ``bundler.toml``, ``BUNDLER_*`` environment variables
  and CLI flags (later layers win).

Functional requirements
- ``./bundler.toml`` is optional; a file named with ``--config`` must exist.
- Every environment variable in ``ENV_BINDINGS`` is coerced to the type of the
  key it targets; a value that cannot be coerced names the variable in the
  error.
- Relative ``repository.root`` and ``observability.log_dir`` resolve against
  the directory holding the config file.
- The merged result is validated by the schema before it is returned.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from context_bundler.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "bundler.toml"
ENV_PREFIX: Final[str] = "BUNDLER_"


class ConfigLoadError(ValueError):
    """Raised when config cannot be read or an override cannot be coerced."""


def _as_int(raw: str) -> int:
    return int(raw)


def _as_float(raw: str) -> float:
    return float(raw)


def _as_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(raw)


def _as_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _as_str(raw: str) -> str:
    return raw


_Coercer = Callable[[str], object]

# (section, key) -> coercer; the variable name is BUNDLER_<SECTION>_<KEY>.
ENV_BINDINGS: Final[dict[tuple[str, str], _Coercer]] = {
    ("repository", "root"): _as_str,
    ("discovery", "patterns"): _as_list,
    ("discovery", "max_depth"): _as_int,
    ("discovery", "extra_ignore_patterns"): _as_list,
    ("tokens", "default_encoding"): _as_str,
    ("tokens", "count_encoding"): _as_str,
    ("tokens", "max_tokens"): _as_int,
    ("tokens", "max_count_tokens"): _as_int,
    ("tokens", "concurrency"): _as_int,
    ("generator", "command"): _as_str,
    ("generator", "timeout_seconds"): _as_float,
    ("observability", "log_level"): _as_str,
    ("observability", "log_dir"): _as_str,
    ("observability", "log_to_stderr"): _as_bool,
}

_EXPECTED: Final[dict[_Coercer, str]] = {
    _as_int: "an integer",
    _as_float: "a number",
    _as_bool: "a boolean (true/false/1/0/yes/no/on/off)",
}


def env_var_name(section: str, key: str) -> str:
    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load the effective config with precedence CLI > env > file > defaults.

    ``cli_overrides`` uses dotted keys (``"tokens.max_tokens"``); ``None``
    values mean "flag not given" and are skipped.
    """

    path = (
        Path(config_path).expanduser().resolve()
        if config_path is not None
        else (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    )
    from_file = _read_toml(path, required=config_path is not None)

    # Validate the file layer alone first so its errors are not blamed on env/CLI.
    config = assert_valid_config(merge_config(default_config(), from_file))
    config = merge_config(config, _env_layer(os.environ if environ is None else environ))
    config = merge_config(config, _cli_layer(cli_overrides or {}))
    return assert_valid_config(normalize_paths(config, base_dir=path.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with relative path fields anchored at ``base_dir``."""

    result = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = result.get(section)
        if isinstance(table, dict) and isinstance(table.get(key), str):
            raw = Path(os.path.expandvars(table[key])).expanduser()
            anchored = raw if raw.is_absolute() else base_dir / raw
            table[key] = Path(os.path.normpath(anchored)).as_posix()
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Serialize ``config`` as compact JSON with sorted keys."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, dict[str, object]]:
    layer: dict[str, dict[str, object]] = {}
    for (section, key), coerce in ENV_BINDINGS.items():
        name = env_var_name(section, key)
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            expected = _EXPECTED.get(coerce, "valid")
            raise ConfigLoadError(f"{name} -> {section}.{key} must be {expected}") from exc
        layer.setdefault(section, {})[key] = value
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in overrides.items():
        if value is None:
            continue
        *parents, leaf = [part for part in dotted.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        cursor = layer
        for part in parents:
            cursor = cursor.setdefault(part, {})
        cursor[leaf] = value
    return layer


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_BINDINGS",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
