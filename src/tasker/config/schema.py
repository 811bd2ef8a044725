"""
launchd-tasker — runtime settings schema and validation.

Purpose
- Define built-in defaults and strict validation rules for the runtime settings
  (root directory, descriptor directory, launchctl executable, fixed filenames).
- Materialize validated settings into immutable ``TaskerSettings`` / ``RootLayout``
  values that are passed explicitly to the lifecycle engine and its collaborators.

Functional requirements
- Validate payloads and return structured issues (field path + message).
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, TypedDict

NAMESPACE: Final[str] = "com.tasker.tasks"
DEFAULT_DESCRIPTOR_DIR: Final[str] = "/Library/LaunchDaemons"
DEFAULT_LAUNCHCTL: Final[str] = "launchctl"
DEFAULT_ROOT_ALIAS: Final[str] = "$TASK_ROOT"
DEFAULT_STDOUT_FILENAME: Final[str] = "stdout.log"
DEFAULT_STDERR_FILENAME: Final[str] = "stderr.log"

META_FOLDER: Final[str] = "meta"
TASK_FOLDER: Final[str] = "tasks"
TRASH_FOLDER: Final[str] = "trash"
OUT_FOLDER: Final[str] = "out"
TRASHED_TASK_FOLDER: Final[str] = "task"
STAGING_FOLDER: Final[str] = ".staging"

LOG_LEVELS: Final[tuple[str, ...]] = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")

# Settings paths that are normalized relative to the settings file location.
PATH_FIELDS: Final[tuple[str, ...]] = ("root", "descriptor_dir")

_FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LoggingSection(TypedDict):
    level: str
    json: bool


class TaskerConfig(TypedDict):
    root: str | None
    descriptor_dir: str
    launchctl: str
    root_alias: str
    stdout_filename: str
    stderr_filename: str
    logging: LoggingSection


DEFAULT_CONFIG: Final[TaskerConfig] = {
    "root": None,
    "descriptor_dir": DEFAULT_DESCRIPTOR_DIR,
    "launchctl": DEFAULT_LAUNCHCTL,
    "root_alias": DEFAULT_ROOT_ALIAS,
    "stdout_filename": DEFAULT_STDOUT_FILENAME,
    "stderr_filename": DEFAULT_STDERR_FILENAME,
    "logging": {"level": "INFO", "json": False},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigLoadError(ValueError):
    """Raised when settings cannot be loaded, coerced, or validated."""

    def __init__(self, message: str, issues: Sequence[ConfigValidationIssue] = ()) -> None:
        self.issues = tuple(issues)
        if self.issues:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
            message = f"{message}:\n{rendered}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class RootLayout:
    """Root-relative locations of per-label durable state.

    Every path is a pure function of the label and the roots fixed here.
    """

    root: Path
    descriptor_dir: Path
    stdout_filename: str = DEFAULT_STDOUT_FILENAME
    stderr_filename: str = DEFAULT_STDERR_FILENAME

    @property
    def meta_dir(self) -> Path:
        return self.root / META_FOLDER

    @property
    def tasks_dir(self) -> Path:
        return self.root / TASK_FOLDER

    @property
    def trash_dir(self) -> Path:
        return self.root / TRASH_FOLDER

    @property
    def out_dir(self) -> Path:
        return self.root / OUT_FOLDER

    @property
    def staging_dir(self) -> Path:
        return self.root / STAGING_FOLDER

    def task_dir(self, label: str) -> Path:
        return self.tasks_dir / label

    def output_dir(self, label: str) -> Path:
        return self.out_dir / label

    def trash_for(self, label: str) -> Path:
        """Parent of every trash generation of ``label``."""

        return self.trash_dir / label

    def trash_generation(self, label: str, generation: str) -> Path:
        return self.trash_for(label) / generation

    def meta_file(self, label: str) -> Path:
        return self.meta_dir / f"{label}.yaml"

    def descriptor_path(self, label: str) -> Path:
        return self.descriptor_dir / f"{label}.plist"

    def stdout_path(self, label: str) -> Path:
        return self.output_dir(label) / self.stdout_filename

    def stderr_path(self, label: str) -> Path:
        return self.output_dir(label) / self.stderr_filename

    def ensure(self) -> None:
        """Create the four state directories (and the root) when missing."""

        for directory in (self.root, self.meta_dir, self.tasks_dir, self.trash_dir, self.out_dir):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True, slots=True)
class TaskerSettings:
    """Immutable process-wide runtime settings."""

    layout: RootLayout
    launchctl: str = DEFAULT_LAUNCHCTL
    root_alias: str = DEFAULT_ROOT_ALIAS
    namespace: str = NAMESPACE
    log_level: str = "INFO"
    log_json: bool = False


def default_config() -> TaskerConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key in sorted(overlay):
        value = overlay[key]
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> tuple[ConfigValidationIssue, ...]:
    """Validate a settings payload and return all issues in deterministic order."""

    issues: list[ConfigValidationIssue] = []

    def add(path: str, message: str) -> None:
        issues.append(ConfigValidationIssue(path=path, message=message))

    if not isinstance(config, Mapping):
        add("<root>", f"expected object, got {type(config).__name__}")
        return tuple(issues)

    allowed = set(DEFAULT_CONFIG)
    for key in sorted(str(item) for item in config):
        if key not in allowed:
            add(key, "unknown field")

    root = config.get("root")
    if root is None:
        add("root", "missing required field (set it in tasker.toml or TASKER_ROOT)")
    else:
        _check_path_text(root, "root", add)

    _check_path_text(config.get("descriptor_dir"), "descriptor_dir", add)
    _check_nonempty_str(config.get("launchctl"), "launchctl", add)
    _check_nonempty_str(config.get("root_alias"), "root_alias", add)
    for field_name in ("stdout_filename", "stderr_filename"):
        value = config.get(field_name)
        if _check_nonempty_str(value, field_name, add) and not _FILENAME_PATTERN.fullmatch(
            str(value)
        ):
            add(field_name, "must be a bare file name")
    if config.get("stdout_filename") == config.get("stderr_filename"):
        add("stderr_filename", "must differ from stdout_filename")

    section = config.get("logging")
    if not isinstance(section, Mapping):
        add("logging", f"expected object, got {type(section).__name__}")
    else:
        for key in sorted(str(item) for item in section):
            if key not in {"level", "json"}:
                add(f"logging.{key}", "unknown field")
        level = section.get("level")
        if not isinstance(level, str) or level.strip().upper() not in LOG_LEVELS:
            add("logging.level", f"expected one of: {', '.join(LOG_LEVELS)}")
        if not isinstance(section.get("json"), bool):
            add("logging.json", "expected boolean")

    return tuple(issues)


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate settings and raise ``ConfigLoadError`` on failure."""

    issues = validate_config(config)
    if issues:
        raise ConfigLoadError("invalid settings", issues)
    assert isinstance(config, Mapping)
    return dict(config)


def settings_from_config(config: Mapping[str, object]) -> TaskerSettings:
    """Materialize a validated settings payload into ``TaskerSettings``."""

    valid = assert_valid_config(config)
    logging_section = valid["logging"]
    layout = RootLayout(
        root=Path(valid["root"]),
        descriptor_dir=Path(valid["descriptor_dir"]),
        stdout_filename=valid["stdout_filename"],
        stderr_filename=valid["stderr_filename"],
    )
    return TaskerSettings(
        layout=layout,
        launchctl=valid["launchctl"],
        root_alias=valid["root_alias"],
        log_level=str(logging_section["level"]).strip().upper(),
        log_json=bool(logging_section["json"]),
    )


def _check_nonempty_str(value: object, path: str, add: Any) -> bool:
    if not isinstance(value, str):
        add(path, f"expected string, got {type(value).__name__}")
        return False
    if not value.strip():
        add(path, "must not be empty")
        return False
    return True


def _check_path_text(value: object, path: str, add: Any) -> None:
    if not _check_nonempty_str(value, path, add):
        return
    assert isinstance(value, str)
    if "\x00" in value:
        add(path, "must not contain NUL bytes")


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_DESCRIPTOR_DIR",
    "DEFAULT_LAUNCHCTL",
    "DEFAULT_ROOT_ALIAS",
    "DEFAULT_STDERR_FILENAME",
    "DEFAULT_STDOUT_FILENAME",
    "NAMESPACE",
    "PATH_FIELDS",
    "ConfigLoadError",
    "ConfigValidationIssue",
    "RootLayout",
    "TaskerConfig",
    "TaskerSettings",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "settings_from_config",
    "validate_config",
]
