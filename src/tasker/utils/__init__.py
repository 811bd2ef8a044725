"""Utility exports for filesystem and archive helpers."""

from tasker.utils.archive import pack_zip, unpack_zip
from tasker.utils.fs import (
    atomic_write,
    chown_tree,
    copy_tree,
    ensure_dir,
    is_within,
    move_tree,
    read_last_lines,
    remove_file_if_exists,
    reset_dir,
)

__all__ = [
    "atomic_write",
    "chown_tree",
    "copy_tree",
    "ensure_dir",
    "is_within",
    "move_tree",
    "pack_zip",
    "read_last_lines",
    "remove_file_if_exists",
    "reset_dir",
    "unpack_zip",
]
