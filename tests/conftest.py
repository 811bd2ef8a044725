"""Shared fixtures: an in-memory launchctl, a temporary root layout, and job archives."""

from __future__ import annotations

import sys
import zipfile
from collections.abc import Callable, Iterator, Mapping, Sequence
from pathlib import Path

import pytest

from tasker.config import RootLayout, TaskerSettings, reset_runtime_settings
from tasker.lifecycle import LifecycleEngine
from tasker.observability import shutdown_logging
from tasker.process_control import CommandResult, LaunchctlAdapter

PYTHON = sys.executable


class FakeLaunchctl:
    """Stand-in for the launchctl executable that tracks loaded labels in memory."""

    def __init__(self) -> None:
        # label -> (pid, last exit status)
        self.loaded: dict[str, tuple[int | None, int | None]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.extra_lines: list[str] = []
        self.fail_verbs: set[str] = set()
        self.on_load: Callable[[Path], None] | None = None

    def run(self, command: Sequence[str]) -> CommandResult:
        args = tuple(command[1:])
        self.calls.append(args)
        verb = args[0]
        if verb in self.fail_verbs:
            return CommandResult(tuple(command), 1, "", f"{verb}: simulated failure\n")
        if verb == "list":
            lines = ["PID\tStatus\tLabel"]
            for label, (pid, status) in sorted(self.loaded.items()):
                pid_text = "-" if pid is None else str(pid)
                status_text = "-" if status is None else str(status)
                lines.append(f"{pid_text}\t{status_text}\t{label}")
            lines.extend(self.extra_lines)
            return CommandResult(tuple(command), 0, "\n".join(lines) + "\n", "")

        descriptor = Path(args[1])
        label = descriptor.stem
        if verb == "load":
            if self.on_load is not None:
                self.on_load(descriptor)
            self.loaded[label] = (None, 0)
        elif verb == "unload":
            if label not in self.loaded:
                return CommandResult(tuple(command), 113, "", "Could not find specified service\n")
            del self.loaded[label]
        return CommandResult(tuple(command), 0, "", "")

    def verbs(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.hookimpl(wrapper=True, trylast=True)
def pytest_runtest_call(item: pytest.Item) -> Iterator[None]:
    # pytest closes the per-test capture stream when the call phase ends, before
    # fixture teardown; detach the logging handler bound to it while it is open.
    try:
        return (yield)
    finally:
        shutdown_logging()


@pytest.fixture(autouse=True)
def _isolated_runtime_settings() -> Iterator[None]:
    reset_runtime_settings()
    yield
    reset_runtime_settings()


@pytest.fixture
def fake_launchctl() -> FakeLaunchctl:
    return FakeLaunchctl()


@pytest.fixture
def settings(tmp_path: Path) -> TaskerSettings:
    layout = RootLayout(root=tmp_path / "root", descriptor_dir=tmp_path / "LaunchDaemons")
    layout.ensure()
    layout.descriptor_dir.mkdir(parents=True, exist_ok=True)
    return TaskerSettings(layout=layout)


@pytest.fixture
def adapter(settings: TaskerSettings, fake_launchctl: FakeLaunchctl) -> LaunchctlAdapter:
    return LaunchctlAdapter.from_settings(settings, runner=fake_launchctl)


@pytest.fixture
def engine(settings: TaskerSettings, adapter: LaunchctlAdapter) -> LifecycleEngine:
    return LifecycleEngine(settings, adapter=adapter)


def _job_yaml(label: str = "hello", *extra_options: str) -> str:
    lines = [
        f"Label: {label}",
        f"Program: {PYTHON}",
        "Configuration:",
        "  - ProgramArguments:",
        f"      - {PYTHON}",
        "      - $TASK_ROOT/main.py",
        "  - WorkingDirectory: $TASK_ROOT",
        "  - RunAtLoad: true",
    ]
    lines.extend(f"  - {option}" for option in extra_options)
    return "\n".join(lines) + "\n"


@pytest.fixture
def job_yaml() -> Callable[..., str]:
    """Declarative text for a python job whose arguments point into the task root."""

    return _job_yaml


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    """Build a job zip from a mapping of archive member name to text."""

    counter = iter(range(1_000_000))

    def _make(members: Mapping[str, str], name: str | None = None) -> Path:
        archive = tmp_path / "archives" / (name or f"job-{next(counter)}.zip")
        archive.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive, "w") as handle:
            for member, text in members.items():
                handle.writestr(member, text)
        return archive

    return _make
