"""
launchd-tasker — runtime settings loader.

Purpose
- Build the effective runtime settings from four layers, highest first:
  CLI overrides, ``TASKER_*`` environment variables, ``tasker.toml``, defaults.
- Provide the lazily-initialized, exactly-once process-wide settings value.

Functional requirements
- Environment and CLI overrides are flat dotted keys (``logging.level``) that are
  expanded into nested mappings before merging; ``None`` CLI values are ignored.
- Relative ``root``/``descriptor_dir`` values resolve against the settings file's
  directory; ``~`` and ``$VARS`` are expanded.
- Every failure surfaces as ``ConfigLoadError``.
"""

from __future__ import annotations

import os
import threading
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from tasker.config.schema import (
    PATH_FIELDS,
    ConfigLoadError,
    TaskerSettings,
    assert_valid_config,
    default_config,
    merge_config,
    settings_from_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "tasker.toml"
ENV_PREFIX: Final[str] = "TASKER_"

# env suffix -> dotted settings key; LOG_JSON is the only boolean.
_ENV_KEYS: Final[dict[str, str]] = {
    "ROOT": "root",
    "DESCRIPTOR_DIR": "descriptor_dir",
    "LAUNCHCTL": "launchctl",
    "ROOT_ALIAS": "root_alias",
    "STDOUT_FILENAME": "stdout_filename",
    "STDERR_FILENAME": "stderr_filename",
    "LOG_LEVEL": "logging.level",
    "LOG_JSON": "logging.json",
}
_BOOLEAN_KEYS: Final[frozenset[str]] = frozenset({"logging.json"})
_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})

_RUNTIME_LOCK = threading.Lock()
_RUNTIME_SETTINGS: TaskerSettings | None = None


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated settings payload after applying every layer."""

    settings_file = (
        Path(config_path).expanduser() if config_path is not None else Path(DEFAULT_CONFIG_FILE)
    ).resolve()
    layers = (
        default_config(),
        _read_settings_file(settings_file, required=config_path is not None),
        _nest(_env_overrides(os.environ if environ is None else environ)),
        _nest({key: value for key, value in (cli_overrides or {}).items() if value is not None}),
    )
    merged: dict[str, Any] = {}
    for layer in layers:
        merged = merge_config(merged, layer)
    return assert_valid_config(normalize_paths(merged, base_dir=settings_file.parent))


def load_settings(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> TaskerSettings:
    return settings_from_config(
        load_config(config_path, cli_overrides=cli_overrides, environ=environ)
    )


def runtime_settings(loader: Callable[[], TaskerSettings] | None = None) -> TaskerSettings:
    """Return the process-wide settings, initializing them exactly once.

    Concurrent first callers serialize on a lock; ``loader`` runs at most once
    per process and a failed load leaves the slot empty for the next caller.
    The root layout directories are created as part of initialization.
    """

    global _RUNTIME_SETTINGS
    if _RUNTIME_SETTINGS is not None:
        return _RUNTIME_SETTINGS
    with _RUNTIME_LOCK:
        if _RUNTIME_SETTINGS is None:
            settings = (loader or load_settings)()
            settings.layout.ensure()
            _RUNTIME_SETTINGS = settings
        return _RUNTIME_SETTINGS


def reset_runtime_settings() -> None:
    """Forget the memoized settings (test isolation only)."""

    global _RUNTIME_SETTINGS
    with _RUNTIME_LOCK:
        _RUNTIME_SETTINGS = None


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Make ``PATH_FIELDS`` absolute, resolving relative values against ``base_dir``."""

    normalized = dict(config)
    for name in PATH_FIELDS:
        raw = normalized.get(name)
        if not isinstance(raw, str) or not raw.strip():
            continue
        candidate = Path(os.path.expandvars(raw)).expanduser()
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        normalized[name] = Path(os.path.normpath(candidate)).as_posix()
    return normalized


def _read_settings_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"settings file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read settings file {path}: {exc}") from exc


def _env_overrides(environ: Mapping[str, str]) -> dict[str, object]:
    flat: dict[str, object] = {}
    for suffix, key in sorted(_ENV_KEYS.items()):
        name = f"{ENV_PREFIX}{suffix}"
        if name not in environ:
            continue
        text = environ[name].strip()
        flat[key] = _env_bool(name, text) if key in _BOOLEAN_KEYS else text
    return flat


def _env_bool(name: str, text: str) -> bool:
    lowered = text.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigLoadError(f"{name} must be a boolean (true/false/1/0/yes/no/on/off)")


def _nest(flat: Mapping[str, object]) -> dict[str, Any]:
    """Expand ``{"logging.level": "DEBUG"}`` into ``{"logging": {"level": "DEBUG"}}``."""

    nested: dict[str, Any] = {}
    for dotted in sorted(flat):
        *parents, leaf = [part for part in dotted.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid override key {dotted!r}")
        node = nested
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = flat[dotted]
    return nested


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "load_config",
    "load_settings",
    "normalize_paths",
    "reset_runtime_settings",
    "runtime_settings",
]
