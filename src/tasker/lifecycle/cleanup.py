"""Attempt-and-continue steps collected into a non-fatal cleanup report."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from tasker.errors import TaskerError


class StepStatus(StrEnum):
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StepOutcome:
    step: str
    status: StepStatus
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"step": self.step, "status": self.status.value, "detail": self.detail}


@dataclass(slots=True)
class CleanupReport:
    """Ordered outcomes of independent cleanup steps for one label."""

    label: str
    steps: list[StepOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failures(self) -> tuple[StepOutcome, ...]:
        return tuple(item for item in self.steps if item.status is StepStatus.FAILED)

    def status_of(self, step: str) -> StepStatus | None:
        for item in self.steps:
            if item.step == step:
                return item.status
        return None

    def attempt(
        self,
        step: str,
        action: Callable[[], bool | None],
        *,
        logger: Any | None = None,
    ) -> StepOutcome:
        """Run ``action`` and record its outcome; never raises for tasker or OS errors.

        ``action`` returns ``False`` when there was nothing to do.
        """

        try:
            performed = action()
        except (TaskerError, OSError) as exc:
            outcome = StepOutcome(step, StepStatus.FAILED, str(exc))
        else:
            status = StepStatus.SKIPPED if performed is False else StepStatus.DONE
            outcome = StepOutcome(step, status)
        self.steps.append(outcome)
        if logger is not None:
            log = logger.warning if outcome.status is StepStatus.FAILED else logger.debug
            log(
                "cleanup_step",
                label=self.label,
                step=step,
                status=outcome.status.value,
                detail=outcome.detail,
            )
        return outcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "ok": self.ok,
            "steps": [item.to_dict() for item in self.steps],
        }


__all__ = ["CleanupReport", "StepOutcome", "StepStatus"]
