from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from tasker.config import TaskerSettings
from tasker.errors import (
    AlreadyLoadedError,
    AlreadyUnloadedError,
    NotFoundError,
    ProcessControlError,
)
from tasker.process_control import (
    LaunchctlAdapter,
    TaskInfo,
    TaskStatus,
    derive_status,
    parse_list_output,
)

if TYPE_CHECKING:
    from conftest import FakeLaunchctl

_RUNNING = "com.tasker.tasks.running"
_IDLE = "com.tasker.tasks.idle"


def _descriptor(settings: TaskerSettings, label: str) -> Path:
    path = settings.layout.descriptor_path(label)
    path.write_text("<plist/>", encoding="utf-8")
    return path


def test_parse_list_output() -> None:
    stdout = "PID\tStatus\tLabel\n123\t0\tcom.a\n-\t-9\tcom.b\n\n-\t-\tcom.c\n"

    assert parse_list_output(stdout) == [
        (123, 0, "com.a"),
        (None, -9, "com.b"),
        (None, None, "com.c"),
    ]
    assert parse_list_output("PID\tStatus\tLabel\n") == []


@pytest.mark.parametrize("line", ["12\tcom.a", "abc\t0\tcom.a", "1\tx\tcom.a"])
def test_parse_list_output_rejects_malformed_rows(line: str) -> None:
    with pytest.raises(ProcessControlError, match="unparsable launchctl list line 2"):
        parse_list_output(f"PID\tStatus\tLabel\n{line}\n")


@pytest.mark.parametrize(
    ("pid", "status", "has_output", "expected"),
    [
        (42, 1, True, TaskStatus.RUNNING),
        (None, 78, True, TaskStatus.ERROR),
        (None, 0, False, TaskStatus.LOADED),
        (None, None, False, TaskStatus.LOADED),
        (None, 0, True, TaskStatus.NORMAL),
    ],
)
def test_derive_status(
    pid: int | None, status: int | None, has_output: bool, expected: TaskStatus
) -> None:
    assert derive_status(pid, status, has_output=has_output) is expected


def test_list_merges_live_and_inventory_sorted(
    adapter: LaunchctlAdapter, settings: TaskerSettings, fake_launchctl: FakeLaunchctl
) -> None:
    fake_launchctl.loaded[_RUNNING] = (321, 0)
    fake_launchctl.extra_lines.append("99\t0\tcom.apple.unrelated")
    _descriptor(settings, _RUNNING)
    _descriptor(settings, _IDLE)
    (settings.layout.descriptor_dir / "com.other.vendor.plist").write_text("", encoding="utf-8")

    records = adapter.list()

    assert records == [
        TaskInfo(label=_IDLE, status=TaskStatus.UNLOADED),
        TaskInfo(label=_RUNNING, status=TaskStatus.RUNNING, pid=321, last_exit_status=0),
    ]
    assert [info.label for info in adapter.list("idle")] == [_IDLE]
    assert records[1].to_dict() == {
        "pid": 321,
        "last_exit_status": 0,
        "label": _RUNNING,
        "status": "RUNNING",
    }


def test_parse_list_output_ignores_malformed_rows_outside_namespace() -> None:
    stdout = (
        "PID\tStatus\tLabel\n"
        "weird\t?\tcom.apple.odd\n"
        "com.vendor.short\n"
        f"-\t0\t{_IDLE}\n"
    )

    assert parse_list_output(stdout, namespace="com.tasker.tasks") == [(None, 0, _IDLE)]
    with pytest.raises(ProcessControlError, match="unparsable launchctl list line 2"):
        parse_list_output(f"PID\tStatus\tLabel\nx\t0\t{_IDLE}\n", namespace="com.tasker.tasks")


def test_foreign_malformed_row_does_not_break_list_or_load(
    adapter: LaunchctlAdapter, settings: TaskerSettings, fake_launchctl: FakeLaunchctl
) -> None:
    fake_launchctl.extra_lines.append("??\tbroken\tcom.apple.garbled")
    _descriptor(settings, _IDLE)

    assert adapter.list() == [TaskInfo(label=_IDLE, status=TaskStatus.UNLOADED)]
    adapter.load(_IDLE)
    assert _IDLE in fake_launchctl.loaded


def test_list_without_descriptor_dir(
    adapter: LaunchctlAdapter, settings: TaskerSettings, fake_launchctl: FakeLaunchctl
) -> None:
    settings.layout.descriptor_dir.rmdir()
    fake_launchctl.loaded[_IDLE] = (None, 0)

    assert adapter.list() == [TaskInfo(label=_IDLE, status=TaskStatus.LOADED, last_exit_status=0)]


def test_load_requires_descriptor_and_unloaded_job(
    adapter: LaunchctlAdapter, settings: TaskerSettings, fake_launchctl: FakeLaunchctl
) -> None:
    with pytest.raises(NotFoundError):
        adapter.load(_IDLE)

    descriptor = _descriptor(settings, _IDLE)
    adapter.load(_IDLE)
    assert fake_launchctl.calls[-1] == ("load", str(descriptor))
    assert adapter.is_loaded(_IDLE)

    with pytest.raises(AlreadyLoadedError):
        adapter.load(_IDLE)


def test_unload_removes_descriptor_by_default(
    adapter: LaunchctlAdapter, settings: TaskerSettings, fake_launchctl: FakeLaunchctl
) -> None:
    descriptor = _descriptor(settings, _IDLE)
    fake_launchctl.loaded[_IDLE] = (None, 0)

    adapter.unload(_IDLE)

    assert not descriptor.exists()
    assert _IDLE not in fake_launchctl.loaded


def test_unload_can_keep_descriptor(
    adapter: LaunchctlAdapter, settings: TaskerSettings, fake_launchctl: FakeLaunchctl
) -> None:
    descriptor = _descriptor(settings, _IDLE)
    fake_launchctl.loaded[_IDLE] = (None, 0)

    adapter.unload(_IDLE, remove_descriptor=False)

    assert descriptor.is_file()


def test_unload_of_unloaded_job_still_attempts_and_raises(
    adapter: LaunchctlAdapter, settings: TaskerSettings, fake_launchctl: FakeLaunchctl
) -> None:
    descriptor = _descriptor(settings, _IDLE)

    with pytest.raises(AlreadyUnloadedError) as exc_info:
        adapter.unload(_IDLE)

    assert fake_launchctl.verbs() == ["list", "unload"]
    assert exc_info.value.returncode == 113
    assert not descriptor.exists()


def test_failing_list_is_process_control_error(
    adapter: LaunchctlAdapter, fake_launchctl: FakeLaunchctl
) -> None:
    fake_launchctl.fail_verbs.add("list")

    with pytest.raises(ProcessControlError) as exc_info:
        adapter.list()

    assert exc_info.value.returncode == 1
    assert "simulated failure" in exc_info.value.stderr
