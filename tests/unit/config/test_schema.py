from __future__ import annotations

from pathlib import Path

import pytest

from tasker.config import (
    ConfigLoadError,
    RootLayout,
    default_config,
    merge_config,
    settings_from_config,
    validate_config,
)


def test_defaults_require_root_only() -> None:
    issues = validate_config(default_config())
    assert [(issue.path, issue.message.split(" (")[0]) for issue in issues] == [
        ("root", "missing required field")
    ]


def test_merge_is_deep_and_does_not_mutate_inputs() -> None:
    base = default_config()
    merged = merge_config(base, {"logging": {"json": True}, "root": "/srv"})

    assert merged["logging"] == {"level": "INFO", "json": True}
    assert base["logging"]["json"] is False
    assert base["root"] is None


def test_stdout_and_stderr_filenames_must_differ() -> None:
    config = merge_config(default_config(), {"root": "/srv", "stderr_filename": "stdout.log"})
    assert [issue.path for issue in validate_config(config)] == ["stderr_filename"]


def test_settings_from_config_rejects_invalid_payload() -> None:
    with pytest.raises(ConfigLoadError, match="invalid settings"):
        settings_from_config({"root": "/srv"})


def test_root_layout_paths() -> None:
    layout = RootLayout(root=Path("/r"), descriptor_dir=Path("/d"), stderr_filename="err.txt")
    label = "com.tasker.tasks.demo"

    assert layout.meta_file(label) == Path("/r/meta/com.tasker.tasks.demo.yaml")
    assert layout.task_dir(label) == Path("/r/tasks/com.tasker.tasks.demo")
    assert layout.trash_for(label) == Path("/r/trash/com.tasker.tasks.demo")
    assert layout.trash_generation(label, "20260101T000000000000Z") == Path(
        "/r/trash/com.tasker.tasks.demo/20260101T000000000000Z"
    )
    assert layout.stderr_path(label) == Path("/r/out/com.tasker.tasks.demo/err.txt")
    assert layout.descriptor_path(label) == Path("/d/com.tasker.tasks.demo.plist")
    assert layout.staging_dir == Path("/r/.staging")
