"""Typed error taxonomy shared by the job model, adapters, and lifecycle engine."""

from __future__ import annotations

from pathlib import Path


class TaskerError(Exception):
    """Base class for all tasker failures."""


class SchemaError(TaskerError):
    """Declarative text is malformed or contains unrecognized structure."""


class ValidationError(TaskerError):
    """A field lies outside its declared domain or references a missing path."""


class NotFoundError(TaskerError):
    """An operation referenced a label that is unknown to the host."""


class AlreadyExistsError(TaskerError):
    """A create operation targeted a label that already has durable state."""


class FileSystemError(TaskerError):
    """A filesystem primitive failed part-way through its work.

    ``step`` names the failing operation and ``path`` the node it was acting
    on, so callers can inspect partially completed moves and copies.
    """

    def __init__(self, message: str, *, step: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.step = step
        self.path = None if path is None else Path(path)


class ProcessControlError(TaskerError):
    """The job-control executable failed or produced unusable output."""

    def __init__(
        self,
        message: str,
        *,
        command: tuple[str, ...] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class AlreadyLoadedError(ProcessControlError):
    """Load was requested for a job that is already registered."""


class AlreadyUnloadedError(ProcessControlError):
    """Unload was requested for a job that was not registered."""


__all__ = [
    "AlreadyExistsError",
    "AlreadyLoadedError",
    "AlreadyUnloadedError",
    "FileSystemError",
    "NotFoundError",
    "ProcessControlError",
    "SchemaError",
    "TaskerError",
    "ValidationError",
]
