"""
launchd-tasker — job specification model.

Purpose
- Typed representation of a launchd job: a namespaced label, an absolute program path,
  and an ordered list of options drawn from a closed set of kinds.
- Upsert/remove by option kind, keyed on ``OptionKind``.

Functional requirements
- A ``Configuration`` never holds two options of the same kind.
- Options are immutable; mutation helpers return new ``Configuration`` values.
- Struct payload field order (``*_KEYS`` tables) is the serialization order used by the
  declarative and descriptor encoders.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import ClassVar, Final

from tasker.config.schema import NAMESPACE
from tasker.errors import SchemaError


class OptionKind(StrEnum):
    PROGRAM_ARGUMENTS = "ProgramArguments"
    ENVIRONMENT_VARIABLES = "EnvironmentVariables"
    KEEP_ALIVE = "KeepAlive"
    RUN_AT_LOAD = "RunAtLoad"
    WORKING_DIRECTORY = "WorkingDirectory"
    USER_NAME = "UserName"
    GROUP_NAME = "GroupName"
    ROOT_DIRECTORY = "RootDirectory"
    EXIT_TIME_OUT = "ExitTimeOut"
    START_INTERVAL = "StartInterval"
    START_CALENDAR_INTERVAL = "StartCalendarInterval"
    STANDARD_IN_PATH = "StandardInPath"
    STANDARD_OUT_PATH = "StandardOutPath"
    STANDARD_ERROR_PATH = "StandardErrorPath"
    SOFT_RESOURCE_LIMITS = "SoftResourceLimits"
    HARD_RESOURCE_LIMITS = "HardResourceLimits"


# (attribute, key) pairs in declaration order.
ALIVE_CONDITION_KEYS: Final[tuple[tuple[str, str], ...]] = (
    ("successful_exit", "SuccessfulExit"),
    ("other_job_enabled", "OtherJobEnabled"),
    ("crashed", "Crashed"),
)

CALENDAR_INTERVAL_KEYS: Final[tuple[tuple[str, str], ...]] = (
    ("minute", "Minute"),
    ("hour", "Hour"),
    ("day", "Day"),
    ("weekday", "Weekday"),
    ("month", "Month"),
)

RESOURCE_LIMIT_KEYS: Final[tuple[tuple[str, str], ...]] = (
    ("cpu", "CPU"),
    ("file_size", "FileSize"),
    ("number_of_files", "NumberOfFiles"),
    ("number_of_processes", "NumberOfProcesses"),
    ("resident_set_size", "ResidentSetSize"),
    ("stack", "Stack"),
)


@dataclass(frozen=True, slots=True)
class AliveCondition:
    """KeepAlive policy; unset fields are omitted from every encoding."""

    successful_exit: bool | None = None
    other_job_enabled: dict[str, bool] | None = None
    crashed: bool | None = None


@dataclass(frozen=True, slots=True)
class CalendarInterval:
    """One StartCalendarInterval trigger. Weekday 0 and 7 are both Sunday."""

    minute: int | None = None
    hour: int | None = None
    day: int | None = None
    weekday: int | None = None
    month: int | None = None


@dataclass(frozen=True, slots=True)
class ResourceLimit:
    cpu: int | None = None
    file_size: int | None = None
    number_of_files: int | None = None
    number_of_processes: int | None = None
    resident_set_size: int | None = None
    stack: int | None = None


@dataclass(frozen=True, slots=True)
class ProgramArguments:
    value: tuple[str, ...]
    kind: ClassVar[OptionKind] = OptionKind.PROGRAM_ARGUMENTS


@dataclass(frozen=True, slots=True)
class EnvironmentVariables:
    value: dict[str, str]
    kind: ClassVar[OptionKind] = OptionKind.ENVIRONMENT_VARIABLES


@dataclass(frozen=True, slots=True)
class KeepAlive:
    value: AliveCondition
    kind: ClassVar[OptionKind] = OptionKind.KEEP_ALIVE


@dataclass(frozen=True, slots=True)
class RunAtLoad:
    value: bool
    kind: ClassVar[OptionKind] = OptionKind.RUN_AT_LOAD


@dataclass(frozen=True, slots=True)
class WorkingDirectory:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.WORKING_DIRECTORY


@dataclass(frozen=True, slots=True)
class UserName:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.USER_NAME


@dataclass(frozen=True, slots=True)
class GroupName:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.GROUP_NAME


@dataclass(frozen=True, slots=True)
class RootDirectory:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.ROOT_DIRECTORY


@dataclass(frozen=True, slots=True)
class ExitTimeOut:
    value: int
    kind: ClassVar[OptionKind] = OptionKind.EXIT_TIME_OUT


@dataclass(frozen=True, slots=True)
class StartInterval:
    value: int
    kind: ClassVar[OptionKind] = OptionKind.START_INTERVAL


@dataclass(frozen=True, slots=True)
class StartCalendarInterval:
    value: tuple[CalendarInterval, ...]
    kind: ClassVar[OptionKind] = OptionKind.START_CALENDAR_INTERVAL


@dataclass(frozen=True, slots=True)
class StandardInPath:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.STANDARD_IN_PATH


@dataclass(frozen=True, slots=True)
class StandardOutPath:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.STANDARD_OUT_PATH


@dataclass(frozen=True, slots=True)
class StandardErrorPath:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.STANDARD_ERROR_PATH


@dataclass(frozen=True, slots=True)
class SoftResourceLimits:
    value: ResourceLimit
    kind: ClassVar[OptionKind] = OptionKind.SOFT_RESOURCE_LIMITS


@dataclass(frozen=True, slots=True)
class HardResourceLimits:
    value: ResourceLimit
    kind: ClassVar[OptionKind] = OptionKind.HARD_RESOURCE_LIMITS


Config = (
    ProgramArguments
    | EnvironmentVariables
    | KeepAlive
    | RunAtLoad
    | WorkingDirectory
    | UserName
    | GroupName
    | RootDirectory
    | ExitTimeOut
    | StartInterval
    | StartCalendarInterval
    | StandardInPath
    | StandardOutPath
    | StandardErrorPath
    | SoftResourceLimits
    | HardResourceLimits
)

OPTION_TYPES: Final[dict[OptionKind, type[Config]]] = {
    option_type.kind: option_type
    for option_type in (
        ProgramArguments,
        EnvironmentVariables,
        KeepAlive,
        RunAtLoad,
        WorkingDirectory,
        UserName,
        GroupName,
        RootDirectory,
        ExitTimeOut,
        StartInterval,
        StartCalendarInterval,
        StandardInPath,
        StandardOutPath,
        StandardErrorPath,
        SoftResourceLimits,
        HardResourceLimits,
    )
}

# Options whose value may start with the root alias token.
ALIASABLE_KINDS: Final[frozenset[OptionKind]] = frozenset(
    {OptionKind.PROGRAM_ARGUMENTS, OptionKind.WORKING_DIRECTORY, OptionKind.ROOT_DIRECTORY}
)


@dataclass(frozen=True, slots=True)
class Configuration:
    """A complete job: qualified label, program path, ordered options."""

    label: str
    program: str
    options: tuple[Config, ...] = ()

    def __post_init__(self) -> None:
        seen: set[OptionKind] = set()
        for option in self.options:
            if option.kind in seen:
                raise SchemaError(f"Configuration: duplicate option {option.kind.value}")
            seen.add(option.kind)

    @property
    def short_label(self) -> str:
        return strip_namespace(self.label)

    def kinds(self) -> tuple[OptionKind, ...]:
        return tuple(option.kind for option in self.options)

    def get(self, kind: OptionKind) -> Config | None:
        for option in self.options:
            if option.kind == kind:
                return option
        return None

    def upsert(self, option: Config) -> Configuration:
        """Replace the option of the same kind in place, or append it."""

        updated: list[Config] = []
        placed = False
        for current in self.options:
            if current.kind != option.kind:
                updated.append(current)
            elif not placed:
                updated.append(option)
                placed = True
        if not placed:
            updated.append(option)
        return replace(self, options=tuple(updated))

    def remove(self, kind: OptionKind) -> Configuration:
        return replace(
            self, options=tuple(option for option in self.options if option.kind != kind)
        )


def upsert(config: Configuration, option: Config) -> Configuration:
    return config.upsert(option)


def remove(config: Configuration, kind: OptionKind) -> Configuration:
    return config.remove(kind)


def qualify_label(label: str, namespace: str = NAMESPACE) -> str:
    """Prefix ``label`` with ``namespace`` unless it already carries it."""

    prefix = f"{namespace}."
    if label.startswith(prefix):
        return label
    return f"{prefix}{label}"


def strip_namespace(label: str, namespace: str = NAMESPACE) -> str:
    prefix = f"{namespace}."
    if label.startswith(prefix):
        return label[len(prefix) :]
    return label


def expand_root_alias(value: str, alias: str, root: Path | str) -> str:
    """Replace a leading ``alias`` in ``value`` with ``root``.

    ``$TASK_ROOT/bin/run`` becomes ``<root>/bin/run`` and a bare ``$TASK_ROOT``
    becomes ``<root>``. Values without the alias are returned unchanged.
    """

    if not value.startswith(alias):
        return value
    rest = value[len(alias) :].lstrip("/")
    if not rest:
        return str(root)
    return str(Path(root) / rest)


def apply_root_alias(config: Configuration, alias: str, root: Path | str) -> Configuration:
    """Expand the root alias in ProgramArguments, WorkingDirectory and RootDirectory."""

    result = config
    for option in config.options:
        if option.kind not in ALIASABLE_KINDS:
            continue
        if isinstance(option, ProgramArguments):
            expanded = tuple(expand_root_alias(item, alias, root) for item in option.value)
            result = result.upsert(ProgramArguments(expanded))
        elif isinstance(option, WorkingDirectory):
            result = result.upsert(WorkingDirectory(expand_root_alias(option.value, alias, root)))
        elif isinstance(option, RootDirectory):
            result = result.upsert(RootDirectory(expand_root_alias(option.value, alias, root)))
    return result


__all__ = [
    "ALIASABLE_KINDS",
    "ALIVE_CONDITION_KEYS",
    "CALENDAR_INTERVAL_KEYS",
    "OPTION_TYPES",
    "RESOURCE_LIMIT_KEYS",
    "AliveCondition",
    "CalendarInterval",
    "Config",
    "Configuration",
    "EnvironmentVariables",
    "ExitTimeOut",
    "GroupName",
    "HardResourceLimits",
    "KeepAlive",
    "OptionKind",
    "ProgramArguments",
    "ResourceLimit",
    "RootDirectory",
    "RunAtLoad",
    "SoftResourceLimits",
    "StandardErrorPath",
    "StandardInPath",
    "StandardOutPath",
    "StartCalendarInterval",
    "StartInterval",
    "UserName",
    "WorkingDirectory",
    "apply_root_alias",
    "expand_root_alias",
    "qualify_label",
    "remove",
    "strip_namespace",
    "upsert",
]
