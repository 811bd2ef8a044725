"""Zip pack/unpack for job packages."""

from __future__ import annotations

import os
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import Final

from tasker.errors import FileSystemError
from tasker.utils.fs import ensure_dir, is_within

PLATFORM_METADATA_PREFIX: Final[str] = "__MACOSX"

PathLike = str | os.PathLike[str]


def unpack_zip(src_file: PathLike, dst_dir: PathLike) -> list[Path]:
    """Extract ``src_file`` into ``dst_dir`` and return the extracted file paths.

    Entries under ``__MACOSX`` are skipped. Directory entries are created before
    any file entry is written. Members that would land outside ``dst_dir`` are
    rejected before anything is extracted.
    """

    archive_path = Path(src_file)
    destination = ensure_dir(dst_dir)
    written: list[Path] = []
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = [
                (info, _member_target(destination, info.filename))
                for info in archive.infolist()
                if not _is_platform_metadata(info.filename)
            ]
            for info, target in members:
                if info.is_dir():
                    ensure_dir(target)
            for info, target in members:
                if info.is_dir():
                    continue
                ensure_dir(target.parent)
                with archive.open(info) as source, target.open("wb") as sink:
                    shutil.copyfileobj(source, sink)
                written.append(target)
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        raise FileSystemError(
            f"cannot read archive {archive_path}: {exc}", step="unpack", path=archive_path
        ) from exc
    except OSError as exc:
        raise FileSystemError(
            f"cannot extract {archive_path}: {exc}", step="unpack", path=archive_path
        ) from exc
    return written


def pack_zip(src_dir: PathLike, dst_file: PathLike) -> Path:
    """Archive the tree under ``src_dir`` into ``dst_file`` with sorted member order."""

    source = Path(src_dir)
    output = Path(dst_file)
    if not source.is_dir():
        raise FileSystemError(f"cannot pack {source}: not a directory", step="pack", path=source)
    if is_within(output, source):
        raise FileSystemError(
            f"archive {output} must not be written inside {source}", step="pack", path=output
        )

    ensure_dir(output.parent)
    temp_output = output.with_name(f".{output.name}.tmp")
    try:
        with zipfile.ZipFile(
            temp_output,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            allowZip64=True,
        ) as archive:
            for current, dirnames, filenames in os.walk(source):
                dirnames.sort()
                current_path = Path(current)
                relative = current_path.relative_to(source)
                if relative.parts:
                    archive.write(current_path, arcname=f"{relative.as_posix()}/")
                for name in sorted(filenames):
                    file_path = current_path / name
                    archive.write(file_path, arcname=(relative / name).as_posix())
        os.replace(temp_output, output)
    except OSError as exc:
        raise FileSystemError(f"cannot pack {source}: {exc}", step="pack", path=output) from exc
    finally:
        if temp_output.exists():
            temp_output.unlink()
    return output


def _is_platform_metadata(name: str) -> bool:
    return PurePosixPath(name).parts[:1] == (PLATFORM_METADATA_PREFIX,)


def _member_target(destination: Path, name: str) -> Path:
    posix = PurePosixPath(name.replace("\\", "/"))
    if posix.is_absolute() or ".." in posix.parts:
        raise FileSystemError(
            f"archive member {name!r} escapes the extraction directory",
            step="unpack",
            path=destination,
        )
    return destination.joinpath(*posix.parts)


__all__ = ["PLATFORM_METADATA_PREFIX", "pack_zip", "unpack_zip"]
