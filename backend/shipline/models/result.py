from enum import Enum

from pydantic import BaseModel, ConfigDict


class FailureReason(str, Enum):
    timeout = "timeout"
    action_error = "action_error"


class ExecutionResult(BaseModel):
    """Outcome of one stage's action. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    exit_code: int | None = None
    reason: FailureReason | None = None
    detail: str = ""
    output: str = ""
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.reason is None

    @classmethod
    def success(
        cls, stage_id: str, exit_code: int = 0, output: str = "", duration: float = 0.0
    ) -> "ExecutionResult":
        return cls(stage_id=stage_id, exit_code=exit_code, output=output, duration=duration)

    @classmethod
    def failure(
        cls,
        stage_id: str,
        reason: FailureReason,
        detail: str,
        exit_code: int | None = None,
        output: str = "",
        duration: float = 0.0,
    ) -> "ExecutionResult":
        return cls(
            stage_id=stage_id,
            exit_code=exit_code,
            reason=reason,
            detail=detail,
            output=output,
            duration=duration,
        )
