"""
launchd-tasker — lifecycle engine.

Purpose
- Orchestrate job create/update/delete/load/unload over the job model, the filesystem
  primitives, and the launchctl adapter.

Functional requirements
- States per label: ABSENT -> STAGED -> LOADED <-> STAGED -> TRASHED.
- Parse and validation failures happen before any durable state changes.
- create/update order their steps from most to least reversible: scratch extraction
  and validation first, descriptor write and ``launchctl load`` last.
- delete is attempt-and-continue and returns a ``CleanupReport``; it never raises.
- Every relocation into the trash gets its own ``trash/<label>/<generation>/``
  directory holding ``task/``, ``out/`` and the meta copy; nothing is overwritten.
- An unknown UserName/GroupName is rejected before any file is moved.
- Load collisions: explicit ``load`` of a loaded job raises ``AlreadyLoadedError``;
  ``update`` unloads first and reloads only if the job was loaded before.

Non-functional requirements
- Synchronous and lock-free; per-label serialization is the caller's concern.
"""

from __future__ import annotations

import json
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, Literal

import structlog

from tasker.config.schema import OUT_FOLDER, TRASHED_TASK_FOLDER, RootLayout, TaskerSettings
from tasker.errors import (
    AlreadyExistsError,
    AlreadyUnloadedError,
    FileSystemError,
    NotFoundError,
    SchemaError,
    ValidationError,
)
from tasker.jobspec.descriptor import to_descriptor
from tasker.jobspec.model import (
    Configuration,
    GroupName,
    StandardErrorPath,
    StandardOutPath,
    UserName,
    apply_root_alias,
    qualify_label,
    strip_namespace,
)
from tasker.jobspec.parser import parse
from tasker.jobspec.validation import validate
from tasker.lifecycle.cleanup import CleanupReport
from tasker.process_control.launchctl import LaunchctlAdapter, TaskInfo
from tasker.utils.archive import pack_zip, unpack_zip
from tasker.utils.fs import (
    atomic_write,
    chown_tree,
    copy_tree,
    ensure_dir,
    move_tree,
    read_last_lines,
    remove_file_if_exists,
    reset_dir,
    resolve_owner,
)

DECLARATIVE_SUFFIXES: Final[tuple[str, ...]] = (".yaml", ".yml")

Stream = Literal["stdout", "stderr"]


class LifecycleEngine:
    """Public entry point for every job operation."""

    def __init__(
        self,
        settings: TaskerSettings,
        *,
        adapter: LaunchctlAdapter | None = None,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings
        self._layout = settings.layout
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._adapter = (
            adapter
            if adapter is not None
            else LaunchctlAdapter.from_settings(settings, logger=self._logger)
        )

    @property
    def settings(self) -> TaskerSettings:
        return self._settings

    @property
    def layout(self) -> RootLayout:
        return self._layout

    def qualify(self, label: str) -> str:
        return qualify_label(label, self._settings.namespace)

    def create(self, archive: Path | str) -> Configuration:
        """Install a job from a zip archive holding one top-level YAML file."""

        layout = self._layout
        layout.ensure()
        staging = reset_dir(layout.staging_dir)
        unpack_zip(archive, staging)

        declarative_file = _locate_declarative(staging)
        text = _read_text(declarative_file)
        config = parse(text, namespace=self._settings.namespace)
        label = config.label
        if self._is_known(label):
            raise AlreadyExistsError(f"{label} already exists")
        validate(config, alias_root=staging, root_alias=self._settings.root_alias)
        self._logger.info("task_validated", label=label, archive=str(archive))

        task_dir = layout.task_dir(label)
        config = apply_root_alias(config, self._settings.root_alias, task_dir)
        user, group = _owner_of(config)
        resolve_owner(staging, user, group)
        self._trash_stale_output(label)

        remove_file_if_exists(declarative_file)
        move_tree(staging, task_dir)
        chown_tree(task_dir, user, group)
        self._logger.info("task_dir_installed", label=label, task_dir=str(task_dir))

        config = self._redirect_output(config, user, group)
        self._persist(config, text)
        self._adapter.load(label)
        self._logger.info("task_created", label=label)
        return config

    def update(self, text: str, expected_label: str) -> Configuration:
        """Replace a job's declarative text, preserving whether it was loaded."""

        config = parse(text, namespace=self._settings.namespace)
        expected = self.qualify(expected_label)
        if config.label != expected:
            raise ValidationError(
                f"Label: {strip_namespace(config.label, self._settings.namespace)!r} "
                f"does not match {strip_namespace(expected, self._settings.namespace)!r}"
            )
        label = config.label
        if not self._is_known(label):
            raise NotFoundError(f"{label} is not a known task")

        task_dir = self._layout.task_dir(label)
        validate(config, alias_root=task_dir, root_alias=self._settings.root_alias)
        user, group = _owner_of(config)
        resolve_owner(task_dir, user, group)

        was_loaded = self._adapter.is_loaded(label)
        if was_loaded:
            self._adapter.unload(label, remove_descriptor=False)
        self._logger.info("task_update_started", label=label, was_loaded=was_loaded)

        config = apply_root_alias(config, self._settings.root_alias, task_dir)
        chown_tree(task_dir, user, group)
        config = self._redirect_output(config, user, group)
        self._persist(config, text)
        if was_loaded:
            self._adapter.load(label)
        self._logger.info("task_updated", label=label, reloaded=was_loaded)
        return config

    def delete(self, label: str) -> CleanupReport:
        """Move every artifact of ``label`` into a fresh trash generation.

        Failures are recorded in the report, never raised. Earlier generations of
        the same label are left untouched.
        """

        label = self.qualify(label)
        layout = self._layout
        trash = self._new_trash_generation(label)
        meta = layout.meta_file(label)
        trashed_meta = trash / meta.name
        report = CleanupReport(label)

        def unload() -> bool:
            try:
                self._adapter.unload(label, remove_descriptor=False)
            except AlreadyUnloadedError:
                return False
            return True

        def trash_tree(source: Path, destination: Path) -> bool:
            if not source.exists():
                return False
            move_tree(source, destination)
            return True

        def copy_meta() -> bool:
            if not meta.is_file():
                return False
            ensure_dir(trash)
            shutil.copy2(meta, trashed_meta)
            return True

        def remove_meta() -> bool:
            if not meta.exists():
                return False
            if not trashed_meta.is_file():
                raise FileSystemError(
                    f"refusing to remove {meta} without a trash copy", step="unlink", path=meta
                )
            return remove_file_if_exists(meta)

        attempt = report.attempt
        attempt("unload", unload, logger=self._logger)
        attempt(
            "remove_descriptor",
            lambda: remove_file_if_exists(layout.descriptor_path(label)),
            logger=self._logger,
        )
        attempt(
            "trash_task_dir",
            lambda: trash_tree(layout.task_dir(label), trash / TRASHED_TASK_FOLDER),
            logger=self._logger,
        )
        attempt(
            "trash_output_dir",
            lambda: trash_tree(layout.output_dir(label), trash / OUT_FOLDER),
            logger=self._logger,
        )
        attempt("trash_meta", copy_meta, logger=self._logger)
        attempt("remove_meta", remove_meta, logger=self._logger)

        self._logger.info(
            "task_deleted", label=label, ok=report.ok, failures=len(report.failures)
        )
        return report

    def load(self, label: str) -> None:
        """STAGED -> LOADED."""

        self._adapter.load(self.qualify(label))

    def unload(self, label: str) -> None:
        """LOADED -> STAGED; the descriptor stays in place."""

        self._adapter.unload(self.qualify(label), remove_descriptor=False)

    def list(self, filter: str = "") -> list[TaskInfo]:  # noqa: A002
        return self._adapter.list(filter)

    def list_json(self, filter: str = "") -> str:  # noqa: A002
        return json.dumps([info.to_dict() for info in self.list(filter)], indent=2)

    def view_declarative(self, label: str) -> str:
        label = self._require_known(label)
        return _read_text(self._layout.meta_file(label))

    def view_stdout(self, label: str) -> str:
        return self._read_output(label, "stdout")

    def view_stderr(self, label: str) -> str:
        return self._read_output(label, "stderr")

    def tail_output(
        self, label: str, stream: Stream = "stdout", lines: int = 20, pattern: str = ""
    ) -> str:
        """Last ``lines`` lines of a job's output that contain ``pattern``."""

        path = self._output_path(self._require_known(label), stream)
        if not path.exists():
            return ""
        return read_last_lines(path, lines, pattern)

    def export(self, label: str, dst_zip: Path | str) -> Path:
        """Pack the task directory plus its declarative text into a create-ready archive."""

        label = self._require_known(label)
        task_dir = self._layout.task_dir(label)
        if not task_dir.is_dir():
            raise NotFoundError(f"{label} has no task directory")
        short = strip_namespace(label, self._settings.namespace)
        ensure_dir(self._layout.root)
        with tempfile.TemporaryDirectory(prefix=".export-", dir=self._layout.root) as scratch:
            bundle = Path(scratch) / short
            copy_tree(task_dir, bundle)
            atomic_write(bundle / f"{short}.yaml", _read_text(self._layout.meta_file(label)))
            output = pack_zip(bundle, dst_zip)
        self._logger.info("task_exported", label=label, archive=str(output))
        return output

    def _is_known(self, label: str) -> bool:
        layout = self._layout
        return (
            layout.meta_file(label).exists()
            or layout.task_dir(label).exists()
            or self._adapter.exists(label)
        )

    def _require_known(self, label: str) -> str:
        qualified = self.qualify(label)
        if not self._layout.meta_file(qualified).is_file():
            raise NotFoundError(f"{qualified} is not a known task")
        return qualified

    def _output_path(self, label: str, stream: str) -> Path:
        if stream == "stdout":
            return self._layout.stdout_path(label)
        if stream == "stderr":
            return self._layout.stderr_path(label)
        raise ValueError(f"unknown output stream {stream!r}")

    def _read_output(self, label: str, stream: Stream) -> str:
        path = self._output_path(self._require_known(label), stream)
        if not path.exists():
            return ""
        return _read_text(path)

    def _trash_stale_output(self, label: str) -> None:
        output_dir = self._layout.output_dir(label)
        if not output_dir.exists():
            return
        destination = self._new_trash_generation(label) / OUT_FOLDER
        move_tree(output_dir, destination)
        self._logger.info("stale_output_trashed", label=label, destination=str(destination))

    def _new_trash_generation(self, label: str) -> Path:
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
        candidate = self._layout.trash_generation(label, stamp)
        counter = 1
        while candidate.exists():
            candidate = self._layout.trash_generation(label, f"{stamp}-{counter}")
            counter += 1
        return candidate

    def _redirect_output(
        self, config: Configuration, user: str | None, group: str | None
    ) -> Configuration:
        label = config.label
        output_dir = ensure_dir(self._layout.output_dir(label))
        chown_tree(output_dir, user, group)
        return config.upsert(StandardOutPath(str(self._layout.stdout_path(label)))).upsert(
            StandardErrorPath(str(self._layout.stderr_path(label)))
        )

    def _persist(self, config: Configuration, text: str) -> None:
        label = config.label
        ensure_dir(self._layout.meta_dir)
        atomic_write(self._layout.meta_file(label), text)
        ensure_dir(self._layout.descriptor_dir)
        atomic_write(self._layout.descriptor_path(label), to_descriptor(config))
        self._logger.info(
            "descriptor_written",
            label=label,
            descriptor=str(self._layout.descriptor_path(label)),
        )


def _locate_declarative(directory: Path) -> Path:
    candidates = sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in DECLARATIVE_SUFFIXES
    )
    if not candidates:
        raise SchemaError("archive: no top-level .yaml/.yml file")
    if len(candidates) > 1:
        names = ", ".join(path.name for path in candidates)
        raise SchemaError(f"archive: ambiguous declarative files: {names}")
    return candidates[0]


def _owner_of(config: Configuration) -> tuple[str | None, str | None]:
    user = config.get(UserName.kind)
    group = config.get(GroupName.kind)
    return (
        None if user is None else str(user.value),
        None if group is None else str(group.value),
    )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FileSystemError(f"cannot read {path}: {exc}", step="read", path=path) from exc


__all__ = ["DECLARATIVE_SUFFIXES", "LifecycleEngine"]
