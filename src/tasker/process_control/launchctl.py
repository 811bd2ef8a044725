"""
launchd-tasker — launchctl process-control adapter.

Purpose
- Run the ``launchctl`` list/load/unload verbs and turn their output into ``TaskInfo``
  records merged with the on-disk descriptor inventory.

Functional requirements
- Only labels carrying the tasker namespace are reported.
- Live records take precedence over inventory-only records; output is sorted by label.
- Commands go through an injectable ``CommandRunner``; non-zero exits become
  ``ProcessControlError`` with the captured stderr. There is no built-in timeout.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import structlog

from tasker.config.schema import NAMESPACE, RootLayout, TaskerSettings
from tasker.errors import (
    AlreadyLoadedError,
    AlreadyUnloadedError,
    FileSystemError,
    NotFoundError,
    ProcessControlError,
)
from tasker.utils.fs import remove_file_if_exists

_ABSENT = "-"


class TaskStatus(StrEnum):
    RUNNING = "RUNNING"
    LOADED = "LOADED"
    UNLOADED = "UNLOADED"
    NORMAL = "NORMAL"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class TaskInfo:
    """Derived view of one job; never persisted."""

    label: str
    status: TaskStatus
    pid: int | None = None
    last_exit_status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "last_exit_status": self.last_exit_status,
            "label": self.label,
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class CommandResult:
    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    """Injectable command runner used for deterministic/offline testing."""

    def run(self, command: Sequence[str]) -> CommandResult: ...


class SubprocessCommandRunner:
    """Default command runner backed by ``subprocess.run``."""

    def run(self, command: Sequence[str]) -> CommandResult:
        try:
            completed = subprocess.run(
                list(command),
                check=False,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            raise ProcessControlError(
                f"cannot execute {command[0]}: {exc}", command=tuple(command)
            ) from exc
        return CommandResult(
            command=tuple(command),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


def parse_list_output(
    stdout: str, *, namespace: str = ""
) -> list[tuple[int | None, int | None, str]]:
    """Split ``launchctl list`` output into ``(pid, last_exit_status, label)`` rows.

    The header line is skipped; ``-`` marks an absent pid or status. With a
    ``namespace``, rows of other jobs are dropped before their columns are
    parsed, so only rows in the namespace can be rejected as malformed.
    """

    rows: list[tuple[int | None, int | None, str]] = []
    for line_number, line in enumerate(stdout.splitlines()[1:], start=2):
        parts = line.split()
        if not parts:
            continue
        if namespace and namespace not in parts[min(2, len(parts) - 1)]:
            continue
        if len(parts) < 3:
            raise ProcessControlError(f"unparsable launchctl list line {line_number}: {line!r}")
        pid = _parse_column(parts[0], line_number)
        status = _parse_column(parts[1], line_number)
        rows.append((pid, status, parts[2]))
    return rows


def derive_status(
    pid: int | None, last_exit_status: int | None, *, has_output: bool
) -> TaskStatus:
    if pid is not None:
        return TaskStatus.RUNNING
    if last_exit_status is not None and last_exit_status != 0:
        return TaskStatus.ERROR
    if not has_output:
        return TaskStatus.LOADED
    return TaskStatus.NORMAL


class LaunchctlAdapter:
    """Narrow wrapper over the ``launchctl`` executable."""

    def __init__(
        self,
        layout: RootLayout,
        *,
        executable: str = "launchctl",
        namespace: str = NAMESPACE,
        runner: CommandRunner | None = None,
        logger: Any | None = None,
    ) -> None:
        self._layout = layout
        self._executable = shutil.which(executable) or executable
        self._namespace = namespace
        self._runner = runner or SubprocessCommandRunner()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def from_settings(
        cls,
        settings: TaskerSettings,
        *,
        runner: CommandRunner | None = None,
        logger: Any | None = None,
    ) -> LaunchctlAdapter:
        return cls(
            settings.layout,
            executable=settings.launchctl,
            namespace=settings.namespace,
            runner=runner,
            logger=logger,
        )

    @property
    def executable(self) -> str:
        return self._executable

    def list(self, filter: str = "") -> list[TaskInfo]:  # noqa: A002
        """Merge live records with inventory-only labels (UNLOADED), sorted by label."""

        merged: dict[str, TaskInfo] = {
            label: TaskInfo(label=label, status=TaskStatus.UNLOADED)
            for label in self.inventory(filter)
        }
        for info in self.live(filter):
            merged[info.label] = info
        return [merged[label] for label in sorted(merged)]

    def live(self, filter: str = "") -> list[TaskInfo]:  # noqa: A002
        result = self._run("list")
        records: list[TaskInfo] = []
        rows = parse_list_output(result.stdout, namespace=self._namespace)
        for pid, last_exit_status, label in rows:
            if self._namespace not in label or filter not in label:
                continue
            status = derive_status(
                pid,
                last_exit_status,
                has_output=self._layout.stdout_path(label).exists(),
            )
            records.append(
                TaskInfo(label=label, status=status, pid=pid, last_exit_status=last_exit_status)
            )
        return records

    def inventory(self, filter: str = "") -> list[str]:  # noqa: A002
        """Labels with a descriptor file on disk."""

        directory = self._layout.descriptor_dir
        if not directory.is_dir():
            return []
        return sorted(
            path.stem
            for path in directory.glob("*.plist")
            if self._namespace in path.stem and filter in path.stem
        )

    def is_loaded(self, label: str) -> bool:
        return any(info.label == label for info in self.live(label))

    def exists(self, label: str) -> bool:
        return self._layout.descriptor_path(label).is_file()

    def load(self, label: str) -> None:
        if self.is_loaded(label):
            raise AlreadyLoadedError(f"{label} is already loaded")
        if not self.exists(label):
            raise NotFoundError(f"no descriptor for {label}")
        descriptor = self._layout.descriptor_path(label)
        self._run("load", str(descriptor))
        self._logger.info("launchctl_load", label=label, descriptor=str(descriptor))

    def unload(self, label: str, *, remove_descriptor: bool = True) -> None:
        """Always attempt the unload verb; fail only if ``label`` was not loaded."""

        was_loaded = self.is_loaded(label)
        descriptor = self._layout.descriptor_path(label)
        result = self._run("unload", str(descriptor), check=False)
        if result.returncode != 0:
            self._logger.warning(
                "launchctl_unload_failed",
                label=label,
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )
        if remove_descriptor:
            try:
                remove_file_if_exists(descriptor)
            except FileSystemError as exc:
                self._logger.warning(
                    "descriptor_remove_failed",
                    label=label,
                    descriptor=str(descriptor),
                    error=str(exc),
                )
        if not was_loaded:
            raise AlreadyUnloadedError(
                f"{label} was not loaded",
                command=result.command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        self._logger.info("launchctl_unload", label=label, descriptor_removed=remove_descriptor)

    def _run(self, *args: str, check: bool = True) -> CommandResult:
        command = (self._executable, *args)
        result = self._runner.run(command)
        if check and result.returncode != 0:
            raise ProcessControlError(
                f"{' '.join(command)} exited with {result.returncode}: {result.stderr.strip()}",
                command=result.command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result


def _parse_column(token: str, line_number: int) -> int | None:
    if token == _ABSENT:
        return None
    try:
        return int(token)
    except ValueError as exc:
        raise ProcessControlError(
            f"unparsable launchctl list line {line_number}: {token!r} is not an integer"
        ) from exc


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
