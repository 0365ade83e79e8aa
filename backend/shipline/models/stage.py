from enum import Enum
from typing import Any

from pydantic import BaseModel

from shipline.exceptions import StageStateError
from shipline.models.result import ExecutionResult
from shipline.models.trigger import EventKind, TriggerContext


class StageStatus(str, Enum):
    pending = "pending"
    running = "running"
    success = "success"
    failure = "failure"
    skipped = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.success, StageStatus.failure, StageStatus.skipped)


class Stage(BaseModel):
    """A unit of pipeline work. ``action`` is any object with an async ``invoke``."""

    id: str
    needs: list[str] = []
    action: Any = None
    env: dict[str, str] = {}
    when: list[EventKind] = []
    timeout: float | None = None
    status: StageStatus = StageStatus.pending
    result: ExecutionResult | None = None
    skip_reason: str = ""

    def runs_for(self, trigger: TriggerContext) -> bool:
        """Whether the stage's event filter admits this trigger (empty = all)."""
        return not self.when or trigger.event in self.when

    def start(self) -> None:
        if self.status is not StageStatus.pending:
            raise StageStateError(f"Stage {self.id} cannot start from {self.status.value}")
        self.status = StageStatus.running

    def finish(self, result: ExecutionResult) -> None:
        self._check_not_terminal()
        self.result = result
        self.status = StageStatus.success if result.succeeded else StageStatus.failure

    def skip(self, reason: str) -> None:
        self._check_not_terminal()
        self.skip_reason = reason
        self.status = StageStatus.skipped

    def _check_not_terminal(self) -> None:
        if self.status.is_terminal:
            raise StageStateError(f"Stage {self.id} already terminal ({self.status.value})")
