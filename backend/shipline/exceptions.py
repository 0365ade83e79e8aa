"""Exception hierarchy for pipeline construction, gating, and execution."""


class ShiplineError(Exception):
    """Base exception for all pipeline errors."""


class PipelineConfigError(ShiplineError):
    """Pipeline definition or stage graph is invalid."""


class CycleError(PipelineConfigError):
    """Adding a stage would create a dependency cycle."""

    def __init__(self, message: str, cycle: list[str] | None = None):
        super().__init__(message)
        self.cycle = cycle or []


class GateDenied(ShiplineError):
    """A gate blocked the run. Expected control outcome, not a failure."""

    def __init__(self, gate: str, reason: str):
        super().__init__(f"{gate}: {reason}")
        self.gate = gate
        self.reason = reason


class ActionError(ShiplineError):
    """An action exited non-zero or its remote call failed."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class ActionTimeout(ActionError):
    """An action exceeded its stage timeout."""


class NotifyError(ShiplineError):
    """Posting a run summary failed. Logged, never escalated."""


class ExternalServiceError(ShiplineError):
    """An external lookup (e.g. open pull request query) failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StageStateError(ShiplineError):
    """A stage was moved to a second terminal state."""


class RunStateError(ShiplineError):
    """A pipeline run made an illegal status transition."""
