"""Executable CLI entrypoint for ``tasker``.

``run_cli`` already maps tasker errors to exit codes; this layer catches what
escapes it (argparse exits, errors raised while importing or wiring the CLI)
and normalizes everything to the ``ExitCode`` contract.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit codes shared by every command."""

    SUCCESS = 0
    OPERATION_REJECTED = 1
    CONFIG_ERROR = 2
    PROCESS_CONTROL_ERROR = 3
    INTERNAL_ERROR = 4


# Host errors that almost always mean a bad path or setting.
_INPUT_ERRORS: tuple[type[BaseException], ...] = (
    FileNotFoundError,
    NotADirectoryError,
    PermissionError,
    ValueError,
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m tasker`` and the ``tasker`` console script."""

    try:
        from tasker.ui.cli import run_cli

        return _coerce_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - last-resort boundary.
        code = _classify(exc)
        _report(exc, code)
        return int(code)


def _coerce_exit_code(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in {code.value for code in ExitCode}:
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _classify(exc: BaseException) -> ExitCode:
    from tasker.config.schema import ConfigLoadError
    from tasker.errors import TaskerError
    from tasker.ui.cli import exit_code_for

    for item in _causes(exc):
        if isinstance(item, (TaskerError, ConfigLoadError)):
            return ExitCode(exit_code_for(item))
        if isinstance(item, _INPUT_ERRORS):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and its explicit or implicit causes, each once."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _report(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
        return
    message = str(exc).strip() or type(exc).__name__
    print(f"error: {message}", file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint"]
