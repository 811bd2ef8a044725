from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from tasker.config import ConfigLoadError
from tasker.errors import ProcessControlError
from tasker.main import ExitCode, cli_entrypoint
from tasker.observability import shutdown_logging


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def test_successful_command_returns_zero(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    if not Path("/bin/sh").is_file():
        pytest.skip("/bin/sh is required")
    job = tmp_path / "job.yaml"
    job.write_text("Label: demo\nProgram: /bin/sh\nConfiguration: []\n", encoding="utf-8")

    assert cli_entrypoint(["render", str(job), "--format", "yaml"]) == ExitCode.SUCCESS
    assert "Label: demo" in capsys.readouterr().out


def test_usage_error_maps_to_config_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["no-such-command"]) == ExitCode.CONFIG_ERROR
    assert "invalid choice" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConfigLoadError("bad settings"), ExitCode.CONFIG_ERROR),
        (ProcessControlError("launchctl exploded"), ExitCode.PROCESS_CONTROL_ERROR),
        (PermissionError("denied"), ExitCode.CONFIG_ERROR),
    ],
)
def test_uncaught_errors_are_routed(
    error: BaseException, expected: ExitCode, capsys: pytest.CaptureFixture[str]
) -> None:
    with patch("tasker.ui.cli.run_cli", side_effect=error):
        assert cli_entrypoint([]) == expected
    assert str(error) in capsys.readouterr().err


def test_unexpected_error_prints_traceback(capsys: pytest.CaptureFixture[str]) -> None:
    with patch("tasker.ui.cli.run_cli", side_effect=RuntimeError("kaboom")):
        assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR
    assert "Traceback" in capsys.readouterr().err


def test_wrapped_process_control_error_is_found_in_chain() -> None:
    try:
        try:
            raise ProcessControlError("launchctl missing")
        except ProcessControlError as inner:
            raise RuntimeError("wrapper") from inner
    except RuntimeError as outer:
        wrapped = outer

    with patch("tasker.ui.cli.run_cli", side_effect=wrapped):
        assert cli_entrypoint([]) == ExitCode.PROCESS_CONTROL_ERROR


def test_out_of_range_exit_codes_are_normalized() -> None:
    with patch("tasker.ui.cli.run_cli", return_value=17):
        assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR
    with patch("tasker.ui.cli.run_cli", side_effect=SystemExit(None)):
        assert cli_entrypoint([]) == ExitCode.SUCCESS
