"""
launchd-tasker — filesystem primitives

Purpose
- Relocate, copy, and re-own directory trees for the lifecycle engine, plus
  atomic writes and small guarded helpers.

Functional requirements
- ``move_tree`` relocates every leaf by in-filesystem rename (never copy-then-delete),
  creating destination directories lazily during a depth-first traversal, and removes
  the emptied source tree only after every leaf moved.
- Every failing step raises ``FileSystemError`` naming the step and path; completed
  steps are not rolled back, so partial progress stays observable on disk.
- ``chown_tree`` stops at the first node it cannot re-own.

Non-functional requirements
- Blocking calls; callers on an event loop should offload them to worker threads.
"""

from __future__ import annotations

import contextlib
import grp
import os
import pwd
import shutil
import tempfile
from collections import deque
from collections.abc import Callable
from pathlib import Path

from tasker.errors import FileSystemError

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "chown_tree",
    "copy_tree",
    "ensure_dir",
    "is_within",
    "move_tree",
    "read_last_lines",
    "remove_file_if_exists",
    "reset_dir",
    "resolve_owner",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    try:
        target_parent = target.parent.resolve(strict=True)
    except OSError as exc:
        raise FileSystemError(
            f"cannot write {target}: parent directory is missing", step="write", path=target
        ) from exc

    try:
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{target.name}.",
            suffix=".tmp",
            dir=str(target_parent),
        )
    except OSError as exc:
        raise FileSystemError(f"cannot write {target}: {exc}", step="write", path=target) from exc
    temp_path = Path(temp_name)

    try:
        payload = data if isinstance(data, bytes) else data.encode(encoding)
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except OSError as exc:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise FileSystemError(f"cannot write {target}: {exc}", step="write", path=target) from exc


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if absolute ``child`` equals or sits below absolute ``parent``."""

    resolved_parent = Path(os.path.abspath(parent))
    resolved_child = Path(os.path.abspath(child))
    return resolved_child == resolved_parent or resolved_parent in resolved_child.parents


def ensure_dir(path: PathLike) -> Path:
    """Create ``path`` (and parents) if missing and return it."""

    directory = Path(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileSystemError(
            f"cannot create directory {directory}: {exc}", step="mkdir", path=directory
        ) from exc
    return directory


def reset_dir(path: PathLike) -> Path:
    """Remove ``path`` recursively if present, then recreate it empty.

    Only used for scratch space owned by the engine.
    """

    directory = Path(path)
    try:
        if directory.is_symlink() or directory.is_file():
            directory.unlink()
        elif directory.exists():
            shutil.rmtree(directory)
    except OSError as exc:
        raise FileSystemError(
            f"cannot clear directory {directory}: {exc}", step="clear", path=directory
        ) from exc
    return ensure_dir(directory)


def remove_file_if_exists(path: PathLike) -> bool:
    """Unlink a single file; return ``False`` when there was nothing to remove."""

    target = Path(path)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise FileSystemError(f"cannot remove {target}: {exc}", step="unlink", path=target) from exc
    return True


def move_tree(src: PathLike, dst: PathLike) -> None:
    """Relocate the tree at ``src`` into ``dst`` by renaming each leaf.

    Existing files at the destination with the same relative path are replaced.
    """

    source, destination = _check_tree_endpoints(src, dst, verb="move")
    visited: list[Path] = []
    _walk_leaves(source, destination, os.rename, step="rename", visited=visited)

    # Deepest directories were discovered last.
    for directory in reversed(visited):
        try:
            directory.rmdir()
        except OSError as exc:
            raise FileSystemError(
                f"moved all files but cannot remove source directory {directory}: {exc}",
                step="rmdir",
                path=directory,
            ) from exc


def copy_tree(src: PathLike, dst: PathLike) -> None:
    """Copy the tree at ``src`` into ``dst``, leaving the source intact."""

    source, destination = _check_tree_endpoints(src, dst, verb="copy")

    def _copy(from_path: str, to_path: str) -> None:
        shutil.copy2(from_path, to_path, follow_symlinks=False)

    _walk_leaves(source, destination, _copy, step="copy", visited=[])


def resolve_owner(
    path: PathLike, user: str | None = None, group: str | None = None
) -> tuple[int, int] | None:
    """Resolve ``(uid, gid)`` for ``chown``; ``-1`` keeps the node's current id.

    - user given: the user's uid, and its primary group unless ``group`` is also given;
    - only group given: the node keeps its uid;
    - neither: ``None`` (nothing to change).
    """

    if user is None and group is None:
        return None

    uid = -1
    gid = -1
    if user is not None:
        try:
            entry = pwd.getpwnam(user)
        except KeyError as exc:
            raise FileSystemError(f"unknown user {user!r}", step="resolve-user", path=path) from exc
        uid = entry.pw_uid
        gid = entry.pw_gid
    if group is not None:
        try:
            gid = grp.getgrnam(group).gr_gid
        except KeyError as exc:
            raise FileSystemError(
                f"unknown group {group!r}", step="resolve-group", path=path
            ) from exc
    return uid, gid


def chown_tree(path: PathLike, user: str | None = None, group: str | None = None) -> None:
    """Change ownership of ``path`` and everything below it."""

    root = Path(path)
    if not root.exists() and not root.is_symlink():
        raise FileSystemError(f"cannot chown missing path {root}", step="chown", path=root)

    owner = resolve_owner(root, user, group)
    if owner is None:
        return
    uid, gid = owner

    _chown_one(root, uid, gid)
    if not root.is_dir() or root.is_symlink():
        return

    stack = [root]
    while stack:
        current = stack.pop()
        try:
            entries = sorted(os.scandir(current), key=lambda item: item.name)
        except OSError as exc:
            raise FileSystemError(
                f"cannot list {current}: {exc}", step="chown", path=current
            ) from exc
        for entry in entries:
            entry_path = Path(entry.path)
            _chown_one(entry_path, uid, gid)
            if entry.is_dir(follow_symlinks=False):
                stack.append(entry_path)


def read_last_lines(path: PathLike, count: int, pattern: str = "") -> str:
    """Return the last ``count`` lines of ``path`` that contain ``pattern``."""

    if count < 0:
        raise ValueError("count must be >= 0")
    target = Path(path)
    window: deque[str] = deque(maxlen=count)
    try:
        with target.open("r", encoding="utf-8", errors="replace") as handle:
            for line in handle:
                text = line.rstrip("\n")
                if pattern in text:
                    window.append(text)
    except OSError as exc:
        raise FileSystemError(f"cannot read {target}: {exc}", step="read", path=target) from exc
    return "\n".join(window)


def _check_tree_endpoints(src: PathLike, dst: PathLike, *, verb: str) -> tuple[Path, Path]:
    source = Path(src)
    destination = Path(dst)
    if not source.is_dir() or source.is_symlink():
        raise FileSystemError(
            f"cannot {verb} {source}: not a directory", step="stat", path=source
        )
    if is_within(destination, source):
        raise FileSystemError(
            f"cannot {verb} {source} into itself ({destination})", step="stat", path=destination
        )
    return source, destination


def _walk_leaves(
    source: Path,
    destination: Path,
    transfer: Callable[[str, str], object],
    *,
    step: str,
    visited: list[Path],
) -> None:
    """Depth-first traversal applying ``transfer(src, dst)`` to every non-directory."""

    stack = [source]
    while stack:
        current = stack.pop()
        visited.append(current)
        target_dir = destination / current.relative_to(source)
        ensure_dir(target_dir)
        try:
            entries = sorted(os.scandir(current), key=lambda item: item.name)
        except OSError as exc:
            raise FileSystemError(
                f"cannot list {current}: {exc}", step="scandir", path=current
            ) from exc
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                stack.append(Path(entry.path))
                continue
            target = target_dir / entry.name
            try:
                transfer(entry.path, str(target))
            except OSError as exc:
                raise FileSystemError(
                    f"cannot {step} {entry.path} to {target}: {exc}",
                    step=step,
                    path=entry.path,
                ) from exc


def _chown_one(path: Path, uid: int, gid: int) -> None:
    try:
        os.chown(path, uid, gid, follow_symlinks=False)
    except OSError as exc:
        raise FileSystemError(f"cannot chown {path}: {exc}", step="chown", path=path) from exc


def _fsync_directory(path: Path) -> None:
    """
    Best-effort directory fsync for metadata durability after ``os.replace``.

    Some platforms/filesystems do not support fsync on directories.
    """

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
