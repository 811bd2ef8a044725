"""Command-line interface router for launchd-tasker."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from tasker.config import (
    ConfigLoadError,
    TaskerSettings,
    load_settings,
    runtime_settings,
)
from tasker.config.schema import DEFAULT_ROOT_ALIAS
from tasker.errors import (
    AlreadyExistsError,
    AlreadyLoadedError,
    AlreadyUnloadedError,
    FileSystemError,
    NotFoundError,
    ProcessControlError,
    SchemaError,
    TaskerError,
    ValidationError,
)
from tasker.jobspec import parse, to_declarative, to_descriptor, validate
from tasker.lifecycle import LifecycleEngine, StepStatus
from tasker.observability import setup_logging
from tasker.ui.render import CLIRenderer, create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# Checked in order; subclasses before their bases.
_EXIT_CODES: tuple[tuple[type[BaseException], int], ...] = (
    (AlreadyLoadedError, 1),
    (AlreadyUnloadedError, 1),
    (AlreadyExistsError, 1),
    (NotFoundError, 1),
    (FileSystemError, 1),
    (SchemaError, 2),
    (ValidationError, 2),
    (ConfigLoadError, 2),
    (ProcessControlError, 3),
)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="tasker",
        description=(
            "launchd-tasker — manage launchd jobs from declarative YAML.\n\n"
            "Common workflows:\n"
            "  tasker create job.zip       Install and load a job package\n"
            "  tasker list                 Show jobs and their status\n"
            "  tasker update LABEL job.yaml\n"
            "                              Replace a job's declarative text\n"
            "  tasker delete LABEL         Move a job's files to the trash\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to tasker TOML settings (default: ./tasker.toml if present).",
    )
    common.add_argument(
        "--root",
        default=None,
        help="Base directory holding meta/, tasks/, trash/ and out/ (overrides TASKER_ROOT).",
    )
    common.add_argument(
        "--descriptor-dir",
        dest="descriptor_dir",
        default=None,
        help="Directory holding launchd property lists.",
    )
    common.add_argument(
        "--launchctl",
        default=None,
        help="launchctl executable name or path.",
    )
    common.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit machine-readable JSON.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # list ----------------------------------------------------------------
    list_parser = subparsers.add_parser(
        "list",
        parents=[common],
        help="List jobs merged from launchctl and the descriptor inventory.",
    )
    list_parser.add_argument("--filter", default="", help="Only labels containing this text.")
    list_parser.set_defaults(handler=_cmd_list)

    # create --------------------------------------------------------------
    create_parser = subparsers.add_parser(
        "create",
        parents=[common],
        help="Install a job from a zip package and load it.",
    )
    create_parser.add_argument("archive", help="Zip file with one top-level YAML file.")
    create_parser.set_defaults(handler=_cmd_create)

    # update --------------------------------------------------------------
    update_parser = subparsers.add_parser(
        "update",
        parents=[common],
        help="Replace a job's declarative text.",
    )
    update_parser.add_argument("label", help="Job label (with or without namespace).")
    update_parser.add_argument("file", help="YAML file, or '-' for stdin.")
    update_parser.set_defaults(handler=_cmd_update)

    # delete --------------------------------------------------------------
    delete_parser = subparsers.add_parser(
        "delete",
        parents=[common],
        help="Unload a job and move its files to the trash.",
    )
    delete_parser.add_argument("label")
    delete_parser.set_defaults(handler=_cmd_delete)

    # load / unload -------------------------------------------------------
    load_parser = subparsers.add_parser("load", parents=[common], help="Load a staged job.")
    load_parser.add_argument("label")
    load_parser.set_defaults(handler=_cmd_load)

    unload_parser = subparsers.add_parser(
        "unload", parents=[common], help="Unload a job, keeping its descriptor."
    )
    unload_parser.add_argument("label")
    unload_parser.set_defaults(handler=_cmd_unload)

    # show / stdout / stderr / tail --------------------------------------
    show_parser = subparsers.add_parser(
        "show", parents=[common], help="Print a job's stored declarative text."
    )
    show_parser.add_argument("label")
    show_parser.set_defaults(handler=_cmd_show)

    for stream in ("stdout", "stderr"):
        stream_parser = subparsers.add_parser(
            stream, parents=[common], help=f"Print a job's captured {stream}."
        )
        stream_parser.add_argument("label")
        stream_parser.set_defaults(handler=_cmd_stream, stream=stream)

    tail_parser = subparsers.add_parser(
        "tail", parents=[common], help="Print the last lines of a job's output."
    )
    tail_parser.add_argument("label")
    tail_parser.add_argument(
        "--stream", choices=("stdout", "stderr"), default="stdout", help="Output stream."
    )
    tail_parser.add_argument(
        "-n", "--lines", type=int, default=20, help="Number of lines (default: 20)."
    )
    tail_parser.add_argument("--grep", default="", help="Only lines containing this text.")
    tail_parser.set_defaults(handler=_cmd_tail)

    # export --------------------------------------------------------------
    export_parser = subparsers.add_parser(
        "export", parents=[common], help="Pack a job into a zip that create accepts."
    )
    export_parser.add_argument("label")
    export_parser.add_argument("output", help="Destination zip path.")
    export_parser.set_defaults(handler=_cmd_export)

    # render --------------------------------------------------------------
    render_parser = subparsers.add_parser(
        "render",
        parents=[common],
        help="Validate a YAML job file and print its descriptor or canonical YAML.",
    )
    render_parser.add_argument("file", help="YAML file, or '-' for stdin.")
    render_parser.add_argument(
        "--format",
        dest="output_format",
        choices=("plist", "yaml"),
        default="plist",
        help="Output format (default: plist).",
    )
    render_parser.add_argument(
        "--alias-root",
        dest="alias_root",
        default=None,
        help=f"Directory that {DEFAULT_ROOT_ALIAS} paths are checked against.",
    )
    render_parser.set_defaults(handler=_cmd_render, needs_settings=False)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        _configure_logging(namespace)
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except (TaskerError, ConfigLoadError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exit_code_for(exc)
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_list(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    tasks = engine.list(args.filter)
    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json([info.to_dict() for info in tasks])
        return 0
    if not tasks:
        renderer.text("No tasks found.")
        return 0
    renderer.table(
        ("LABEL", "STATUS", "PID", "LAST EXIT"),
        [
            (
                info.label,
                info.status.value,
                "-" if info.pid is None else str(info.pid),
                "-" if info.last_exit_status is None else str(info.last_exit_status),
            )
            for info in tasks
        ],
    )
    return 0


def _cmd_create(args: argparse.Namespace) -> int:
    archive = Path(args.archive).expanduser()
    if not archive.is_file():
        raise CLIError(f"archive not found: {archive}", exit_code=2)
    engine = _build_engine(args)
    config = engine.create(archive)
    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json({"command": "create", "label": config.label})
        return 0
    renderer.text(f"Created and loaded {config.label}")
    if renderer.verbose:
        renderer.kv("task dir", engine.layout.task_dir(config.label))
        renderer.kv("descriptor", engine.layout.descriptor_path(config.label))
    return 0


def _cmd_update(args: argparse.Namespace) -> int:
    text = _read_input(args.file)
    engine = _build_engine(args)
    config = engine.update(text, args.label)
    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json({"command": "update", "label": config.label})
        return 0
    renderer.text(f"Updated {config.label}")
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    report = engine.delete(args.label)
    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json(report.to_dict())
        return 0 if report.ok else 1

    suffix = "" if report.ok else " with errors"
    renderer.text(f"Deleted {report.label}{suffix}")
    for outcome in report.steps:
        line = outcome.step if not outcome.detail else f"{outcome.step}: {outcome.detail}"
        if outcome.status is StepStatus.FAILED:
            renderer.fail(line)
        elif outcome.status is StepStatus.SKIPPED:
            if renderer.verbose:
                renderer.skip(line)
        else:
            renderer.ok(line)
    return 0 if report.ok else 1


def _cmd_load(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    engine.load(args.label)
    _get_renderer(args).text(f"Loaded {engine.qualify(args.label)}")
    return 0


def _cmd_unload(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    engine.unload(args.label)
    _get_renderer(args).text(f"Unloaded {engine.qualify(args.label)}")
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    _get_renderer(args).raw(engine.view_declarative(args.label))
    return 0


def _cmd_stream(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    if args.stream == "stderr":
        content = engine.view_stderr(args.label)
    else:
        content = engine.view_stdout(args.label)
    if content:
        _get_renderer(args).raw(content)
    return 0


def _cmd_tail(args: argparse.Namespace) -> int:
    if args.lines < 0:
        raise CLIError("--lines must be >= 0", exit_code=2)
    engine = _build_engine(args)
    content = engine.tail_output(args.label, args.stream, args.lines, args.grep)
    if content:
        _get_renderer(args).raw(content)
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    output = engine.export(args.label, Path(args.output).expanduser().resolve())
    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json({"command": "export", "archive": str(output)})
        return 0
    renderer.text(f"Exported {engine.qualify(args.label)} to {output}")
    return 0


def _cmd_render(args: argparse.Namespace) -> int:
    text = _read_input(args.file)
    config = validate(parse(text), alias_root=args.alias_root)
    renderer = _get_renderer(args)
    if args.output_format == "yaml":
        renderer.raw(to_declarative(config))
    else:
        renderer.raw(to_descriptor(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure_logging(args: argparse.Namespace) -> None:
    if not getattr(args, "needs_settings", True):
        setup_logging(level=args.log_level or "WARNING")
        return
    settings = _load_runtime_settings(args)
    setup_logging(level=args.log_level or settings.log_level, json_lines=settings.log_json)
    structlog.get_logger(__name__).debug(
        "settings_loaded",
        root=str(settings.layout.root),
        descriptor_dir=str(settings.layout.descriptor_dir),
        command=args.command,
    )


def _load_runtime_settings(args: argparse.Namespace) -> TaskerSettings:
    overrides = {
        "root": args.root,
        "descriptor_dir": args.descriptor_dir,
        "launchctl": args.launchctl,
        "logging.level": args.log_level,
    }
    return runtime_settings(lambda: load_settings(args.config_path, cli_overrides=overrides))


def _build_engine(args: argparse.Namespace) -> LifecycleEngine:
    return LifecycleEngine(_load_runtime_settings(args))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=bool(getattr(args, "verbose", False)))


def _read_input(path_arg: str) -> str:
    if path_arg == "-":
        return sys.stdin.read()
    path = Path(path_arg).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"cannot read {path}: {exc}", exit_code=2) from exc


def exit_code_for(exc: BaseException) -> int:
    for error_type, code in _EXIT_CODES:
        if isinstance(exc, error_type):
            return code
    return 4


__all__ = ["CLIError", "build_parser", "exit_code_for", "main", "run_cli"]
