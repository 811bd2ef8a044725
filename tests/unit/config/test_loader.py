"""
launchd-tasker — unit tests for the settings loader

Purpose
- Validate deterministic settings loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var coercion and path normalization relative to the settings file.
- Exactly-once initialization of the process-wide settings.
"""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from tasker.config import (
    ConfigLoadError,
    RootLayout,
    TaskerSettings,
    load_config,
    load_settings,
    runtime_settings,
)


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "tasker.toml",
        'root = "/srv/tasker"\nlaunchctl = "/bin/launchctl-file"\n',
    )

    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ={"TASKER_LAUNCHCTL": "/bin/launchctl-env"})
    cli_loaded = load_config(
        config_path,
        environ={"TASKER_LAUNCHCTL": "/bin/launchctl-env"},
        cli_overrides={"launchctl": "/bin/launchctl-cli", "root": None},
    )

    assert file_loaded["descriptor_dir"] == "/Library/LaunchDaemons"
    assert file_loaded["launchctl"] == "/bin/launchctl-file"
    assert env_loaded["launchctl"] == "/bin/launchctl-env"
    assert cli_loaded["launchctl"] == "/bin/launchctl-cli"
    assert cli_loaded["root"] == "/srv/tasker"


def test_relative_paths_resolve_against_settings_file(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "etc" / "tasker.toml",
        'root = "state"\ndescriptor_dir = "../daemons"\n',
    )

    loaded = load_config(config_path, environ={})

    base = config_path.resolve().parent
    assert loaded["root"] == (base / "state").as_posix()
    assert loaded["descriptor_dir"] == (base.parent / "daemons").as_posix()


def test_env_bool_coercion(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "tasker.toml", 'root = "/srv/tasker"\n')

    assert load_config(config_path, environ={"TASKER_LOG_JSON": "yes"})["logging"]["json"] is True
    assert load_config(config_path, environ={"TASKER_LOG_JSON": "off"})["logging"]["json"] is False
    with pytest.raises(ConfigLoadError, match="TASKER_LOG_JSON must be a boolean"):
        load_config(config_path, environ={"TASKER_LOG_JSON": "maybe"})


def test_missing_root_is_reported(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "tasker.toml", "")

    with pytest.raises(ConfigLoadError) as exc_info:
        load_config(config_path, environ={})

    assert [issue.path for issue in exc_info.value.issues] == ["root"]


def test_invalid_settings_collect_every_issue(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "tasker.toml",
        'root = "/srv"\nstdout_filename = "a/b"\nbogus = 1\n[logging]\nlevel = "LOUD"\n',
    )

    with pytest.raises(ConfigLoadError) as exc_info:
        load_config(config_path, environ={})

    assert sorted(issue.path for issue in exc_info.value.issues) == [
        "bogus",
        "logging.level",
        "stdout_filename",
    ]


def test_explicit_missing_file_and_bad_toml(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="settings file not found"):
        load_config(tmp_path / "absent.toml", environ={})

    broken = _write_config(tmp_path / "broken.toml", "root = [\n")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(broken, environ={})


def test_load_settings_materializes_layout(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "tasker.toml", 'root = "/srv/tasker"\n')

    settings = load_settings(config_path, environ={"TASKER_LOG_LEVEL": "debug"})

    assert settings.layout.root == Path("/srv/tasker")
    assert settings.layout.stdout_path("com.tasker.tasks.a") == Path(
        "/srv/tasker/out/com.tasker.tasks.a/stdout.log"
    )
    assert settings.log_level == "DEBUG"
    assert settings.root_alias == "$TASK_ROOT"


def test_runtime_settings_initializes_exactly_once(tmp_path: Path) -> None:
    calls: list[int] = []
    layout = RootLayout(root=tmp_path / "root", descriptor_dir=tmp_path / "daemons")

    def loader() -> TaskerSettings:
        calls.append(1)
        return TaskerSettings(layout=layout)

    results: list[TaskerSettings] = []
    threads = [
        threading.Thread(target=lambda: results.append(runtime_settings(loader)))
        for _ in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert all(item is results[0] for item in results)
    assert layout.meta_dir.is_dir() and layout.trash_dir.is_dir()


def test_runtime_settings_failed_load_can_be_retried(tmp_path: Path) -> None:
    def failing() -> TaskerSettings:
        raise ConfigLoadError("boom")

    with pytest.raises(ConfigLoadError):
        runtime_settings(failing)

    layout = RootLayout(root=tmp_path / "root", descriptor_dir=tmp_path / "daemons")
    assert runtime_settings(lambda: TaskerSettings(layout=layout)).layout == layout
