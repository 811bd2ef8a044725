"""Process-control adapter for the host ``launchctl`` executable."""

from tasker.process_control.launchctl import (
    CommandResult,
    CommandRunner,
    LaunchctlAdapter,
    SubprocessCommandRunner,
    TaskInfo,
    TaskStatus,
    derive_status,
    parse_list_output,
)

__all__ = [
    "CommandResult",
    "CommandRunner",
    "LaunchctlAdapter",
    "SubprocessCommandRunner",
    "TaskInfo",
    "TaskStatus",
    "derive_status",
    "parse_list_output",
]
