"""
launchd-tasker — job specification validation.

Purpose
- Check a parsed ``Configuration`` against the domain rules before anything touches disk.

Functional requirements
- Label matches the dotted identifier pattern; program is an absolute path to an
  existing regular file.
- Numeric fields lie in their inclusive ranges; directories and stdio paths exist.
- Values starting with the root alias are resolved against ``alias_root`` when it is
  given and skipped otherwise, since the task directory may not exist yet.
- The first violation raises ``ValidationError``; there is no partial result.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final, NoReturn

from tasker.config.schema import DEFAULT_ROOT_ALIAS
from tasker.errors import ValidationError
from tasker.jobspec.model import (
    CALENDAR_INTERVAL_KEYS,
    RESOURCE_LIMIT_KEYS,
    CalendarInterval,
    Configuration,
    ExitTimeOut,
    HardResourceLimits,
    ResourceLimit,
    RootDirectory,
    SoftResourceLimits,
    StandardErrorPath,
    StandardInPath,
    StandardOutPath,
    StartCalendarInterval,
    StartInterval,
    WorkingDirectory,
    expand_root_alias,
)

LABEL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_]+(\.[A-Za-z0-9_]+)*$")

INT64_MAX: Final[int] = 2**63 - 1

CALENDAR_RANGES: Final[dict[str, tuple[int, int]]] = {
    "minute": (0, 59),
    "hour": (0, 23),
    "day": (1, 31),
    "weekday": (0, 7),
    "month": (1, 12),
}

RESOURCE_LIMIT_RANGES: Final[dict[str, tuple[int, int]]] = {
    "cpu": (0, INT64_MAX),
    "file_size": (0, INT64_MAX),
    "number_of_files": (0, INT64_MAX),
    "number_of_processes": (0, 500),
    "resident_set_size": (0, INT64_MAX),
    "stack": (0, 67104768),
}


def validate(
    config: Configuration,
    *,
    alias_root: Path | str | None = None,
    root_alias: str = DEFAULT_ROOT_ALIAS,
) -> Configuration:
    """Return ``config`` unchanged if every rule holds, else raise ``ValidationError``."""

    if not LABEL_PATTERN.fullmatch(config.label):
        _fail("Label", f"{config.label!r} is not a dotted identifier")
    _check_program(config.program)

    for index, option in enumerate(config.options):
        where = f"Configuration[{index}].{option.kind.value}"
        match option:
            case ExitTimeOut() | StartInterval():
                _check_range(option.value, 0, INT64_MAX, where)
            case StartCalendarInterval():
                for position, interval in enumerate(option.value):
                    _check_calendar(interval, f"{where}[{position}]")
            case SoftResourceLimits() | HardResourceLimits():
                _check_resource_limit(option.value, where)
            case WorkingDirectory() | RootDirectory():
                _check_existing(option.value, where, alias_root, root_alias, directory=True)
            case StandardInPath() | StandardOutPath() | StandardErrorPath():
                _check_existing(option.value, where, alias_root, root_alias, directory=False)
            case _:
                pass
    return config


def _fail(path: str, message: str) -> NoReturn:
    raise ValidationError(f"{path}: {message}")


def _check_program(program: str) -> None:
    path = Path(program)
    if not path.is_absolute():
        _fail("Program", f"{program!r} is not an absolute path")
    if not path.exists():
        _fail("Program", f"{program} does not exist")
    if not path.is_file():
        _fail("Program", f"{program} is not a regular file")


def _check_range(value: int | None, minimum: int, maximum: int, path: str) -> None:
    if value is None:
        return
    if not minimum <= value <= maximum:
        _fail(path, f"{value} is outside [{minimum}, {maximum}]")


def _check_calendar(interval: CalendarInterval, path: str) -> None:
    for attribute, key in CALENDAR_INTERVAL_KEYS:
        minimum, maximum = CALENDAR_RANGES[attribute]
        _check_range(getattr(interval, attribute), minimum, maximum, f"{path}.{key}")


def _check_resource_limit(limit: ResourceLimit, path: str) -> None:
    for attribute, key in RESOURCE_LIMIT_KEYS:
        minimum, maximum = RESOURCE_LIMIT_RANGES[attribute]
        _check_range(getattr(limit, attribute), minimum, maximum, f"{path}.{key}")


def _check_existing(
    value: str,
    path: str,
    alias_root: Path | str | None,
    root_alias: str,
    *,
    directory: bool,
) -> None:
    if value.startswith(root_alias):
        if alias_root is None:
            return
        value = expand_root_alias(value, root_alias, alias_root)
    target = Path(value)
    if directory and not target.is_dir():
        _fail(path, f"{value} is not an existing directory")
    if not directory and not target.is_file():
        _fail(path, f"{value} is not an existing file")


__all__ = [
    "CALENDAR_RANGES",
    "INT64_MAX",
    "LABEL_PATTERN",
    "RESOURCE_LIMIT_RANGES",
    "validate",
]
