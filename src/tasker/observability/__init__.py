"""Logging setup shared by the CLI and the lifecycle engine."""

from tasker.observability.logging import redact_value, setup_logging, shutdown_logging

__all__ = [
    "redact_value",
    "setup_logging",
    "shutdown_logging",
]
