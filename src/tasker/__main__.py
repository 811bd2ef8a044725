"""Module entrypoint for ``python -m tasker``."""

from __future__ import annotations

from tasker.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
