"""
Job specification public API.

Purpose
- Export the typed job model, the YAML parser, validation, and both encoders.
"""

from tasker.jobspec.declarative import to_declarative
from tasker.jobspec.descriptor import from_descriptor, to_descriptor
from tasker.jobspec.model import (
    AliveCondition,
    CalendarInterval,
    Config,
    Configuration,
    EnvironmentVariables,
    ExitTimeOut,
    GroupName,
    HardResourceLimits,
    KeepAlive,
    OptionKind,
    ProgramArguments,
    ResourceLimit,
    RootDirectory,
    RunAtLoad,
    SoftResourceLimits,
    StandardErrorPath,
    StandardInPath,
    StandardOutPath,
    StartCalendarInterval,
    StartInterval,
    UserName,
    WorkingDirectory,
    apply_root_alias,
    expand_root_alias,
    qualify_label,
    remove,
    strip_namespace,
    upsert,
)
from tasker.jobspec.parser import parse, parse_option
from tasker.jobspec.validation import validate

__all__ = [
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
    "from_descriptor",
    "parse",
    "parse_option",
    "qualify_label",
    "remove",
    "strip_namespace",
    "to_declarative",
    "to_descriptor",
    "upsert",
    "validate",
]
