"""Lifecycle engine and its cleanup report."""

from tasker.lifecycle.cleanup import CleanupReport, StepOutcome, StepStatus
from tasker.lifecycle.engine import LifecycleEngine

__all__ = ["CleanupReport", "LifecycleEngine", "StepOutcome", "StepStatus"]
