"""Plain-text output for the tasker CLI.

Every line the CLI prints to stdout goes through ``CLIRenderer`` so command
handlers can be tested with ``capsys``. Output is deterministic: no terminal
detection and no colors.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_COLUMN_GAP = "  "


class CLIRenderer:
    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose

    def text(self, line: str) -> None:
        print(line)

    def raw(self, payload: str) -> None:
        """Print file content as-is; a trailing newline is added only when missing."""

        print(payload, end="" if payload.endswith("\n") else "\n")

    def kv(self, key: str, value: object) -> None:
        print(f"{key}: {value}")

    def emit_json(self, payload: Mapping[str, object] | Sequence[object]) -> None:
        print(json.dumps(payload, indent=2, ensure_ascii=False))

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Print left-aligned columns under a dashed rule; zero rows print nothing."""

        if not rows:
            return
        grid = [[str(cell) for cell in headers]]
        grid.extend([str(cell) for cell in row][: len(headers)] for row in rows)
        widths = [
            max(len(line[i]) if i < len(line) else 0 for line in grid)
            for i in range(len(headers))
        ]
        lines = [_join_padded(grid[0], widths), _COLUMN_GAP.join("-" * width for width in widths)]
        lines.extend(_join_padded(line, widths) for line in grid[1:])
        print("\n".join(lines))

    def ok(self, label: str) -> None:
        self._step("OK", label)

    def skip(self, label: str) -> None:
        self._step("SKIP", label)

    def fail(self, label: str) -> None:
        self._step("FAIL", label)

    def _step(self, status: str, label: str) -> None:
        print(f"  {status:<5} {label}")


def _join_padded(cells: Sequence[str], widths: Sequence[int]) -> str:
    padded = (
        (cells[i] if i < len(cells) else "").ljust(width) for i, width in enumerate(widths)
    )
    return _COLUMN_GAP.join(padded).rstrip()


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
