from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr, model_validator

from shipline.exceptions import RunStateError
from shipline.models.gate import GateDecision
from shipline.models.stage import Stage, StageStatus
from shipline.models.trigger import TriggerContext
from shipline.utils.dag import StageGraph


class RunStatus(str, Enum):
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    denied = "denied"


_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.pending: {RunStatus.running},
    RunStatus.running: {RunStatus.succeeded, RunStatus.failed, RunStatus.denied},
}


def _new_run_id() -> str:
    return uuid4().hex[:12]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineRun(BaseModel):
    """One end-to-end execution of the stage graph for a single trigger.

    The stage graph is built and checked for cycles and unknown dependencies
    whenever a run is constructed, so nothing can run on an unchecked graph.
    """

    id: str = Field(default_factory=_new_run_id)
    trigger: TriggerContext
    stages: list[Stage] = []
    variables: dict[str, str] = {}
    working_dir: str | None = None
    status: RunStatus = RunStatus.pending
    denial: GateDecision | None = None
    error: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
    finished_at: datetime | None = None

    _graph: StageGraph = PrivateAttr(default_factory=StageGraph)

    @model_validator(mode="after")
    def _build_graph(self) -> "PipelineRun":
        graph = StageGraph()
        for stage in self.stages:
            graph.add_stage(stage.id, stage.needs)
        graph.validate()
        self._graph = graph
        return self

    @classmethod
    def create(
        cls,
        trigger: TriggerContext,
        stages: list[Stage],
        variables: dict[str, str] | None = None,
        working_dir: str | None = None,
    ) -> "PipelineRun":
        return cls(
            trigger=trigger,
            stages=stages,
            variables=dict(variables or {}),
            working_dir=working_dir,
        )

    @property
    def graph(self) -> StageGraph:
        return self._graph

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.succeeded, RunStatus.failed, RunStatus.denied)

    def stage(self, stage_id: str) -> Stage:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        raise KeyError(stage_id)

    def stages_with(self, status: StageStatus) -> list[Stage]:
        return [stage for stage in self.stages if stage.status is status]

    def stage_env(self, stage: Stage) -> dict[str, str]:
        """Trigger variables, then run variables, then the stage's own env."""
        return {"RUN_ID": self.id, **self.trigger.as_env(), **self.variables, **stage.env}

    def derive_status(self) -> RunStatus:
        """Overall outcome once every stage is terminal."""
        pending = [stage.id for stage in self.stages if not stage.status.is_terminal]
        if pending:
            raise RunStateError(
                f"Run {self.id} has stages that never finished: {', '.join(pending)}"
            )
        if any(stage.status is StageStatus.failure for stage in self.stages):
            return RunStatus.failed
        return RunStatus.succeeded

    def transition(self, status: RunStatus) -> None:
        if status not in _TRANSITIONS.get(self.status, set()):
            raise RunStateError(
                f"Run {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if self.is_terminal:
            self.finished_at = _utc_now()
