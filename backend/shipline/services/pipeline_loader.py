"""Loads pipeline definitions (YAML or mappings) into runs and gates.

Example::

    name: staging
    gates:
      - type: open_pull_request
        branch: staging
        events: [merge_queue]
    stages:
      - id: lint
        run: pre-commit run --all-files
      - id: test
        needs: [lint]
        run: [make, test]
        when: [merge_queue]
        timeout: 600
"""

import logging
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shipline.exceptions import PipelineConfigError
from shipline.models.run import PipelineRun
from shipline.models.stage import Stage
from shipline.models.trigger import EventKind, TriggerContext
from shipline.services.executor import ShellAction
from shipline.services.gates import BranchGate, EventGate, Gate, OpenPullRequestGate

logger = logging.getLogger(__name__)


class _Definition(BaseModel):
    model_config = ConfigDict(extra="forbid")


class StageDefinition(_Definition):
    id: str
    run: str | list[str]
    needs: list[str] = []
    env: dict[str, str] = {}
    when: list[EventKind] = []
    timeout: float | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Stage id cannot be empty")
        return v

    @field_validator("run")
    @classmethod
    def validate_run(cls, v: str | list[str]) -> str | list[str]:
        if not v or (isinstance(v, str) and not v.strip()):
            raise ValueError("Stage run command cannot be empty")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("Stage timeout must be positive")
        return v


class OpenPullRequestGateDefinition(_Definition):
    type: Literal["open_pull_request"]
    branch: str
    state: str = "open"
    name: str | None = None
    events: list[EventKind] = []
    actions: list[str] = []


class BranchGateDefinition(_Definition):
    type: Literal["branch"]
    branches: list[str] = Field(min_length=1)
    name: str | None = None
    events: list[EventKind] = []
    actions: list[str] = []


class EventGateDefinition(_Definition):
    type: Literal["event"]
    name: str | None = None
    events: list[EventKind] = []
    actions: list[str] = []


GateDefinition = Annotated[
    OpenPullRequestGateDefinition | BranchGateDefinition | EventGateDefinition,
    Field(discriminator="type"),
]


class PipelineDefinition(_Definition):
    name: str = "pipeline"
    variables: dict[str, str] = {}
    gates: list[GateDefinition] = []
    stages: list[StageDefinition] = Field(min_length=1)


def parse_definition(data: dict[str, Any]) -> PipelineDefinition:
    """Validate a mapping as a pipeline definition."""
    try:
        return PipelineDefinition.model_validate(data)
    except ValidationError as exc:
        raise PipelineConfigError(f"Invalid pipeline definition: {exc}") from exc


def load_definition(path: str | Path) -> PipelineDefinition:
    """Read and validate a YAML pipeline definition file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise PipelineConfigError(f"Cannot read pipeline definition {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PipelineConfigError(f"Failed to parse YAML in {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise PipelineConfigError(f"Pipeline definition {path} must be a mapping")
    definition = parse_definition(payload)
    logger.info("Loaded pipeline %s from %s (%d stages)", definition.name, path, len(definition.stages))
    return definition


def build_gate(definition: GateDefinition) -> Gate:
    scope = {"name": definition.name, "events": definition.events, "actions": definition.actions}
    if isinstance(definition, OpenPullRequestGateDefinition):
        return OpenPullRequestGate(branch=definition.branch, state=definition.state, **scope)
    if isinstance(definition, BranchGateDefinition):
        return BranchGate(branches=definition.branches, **scope)
    return EventGate(**scope)


def build_stage(definition: StageDefinition) -> Stage:
    return Stage(
        id=definition.id,
        needs=definition.needs,
        action=ShellAction(definition.run),
        env=definition.env,
        when=definition.when,
        timeout=definition.timeout,
    )


def build_run(
    definition: PipelineDefinition,
    trigger: TriggerContext,
    variables: dict[str, str] | None = None,
    working_dir: str | None = None,
) -> tuple[PipelineRun, list[Gate]]:
    """Create a PipelineRun and its gates for ``trigger``.

    ``variables`` override the definition's own variables. Raises
    PipelineConfigError (including CycleError) before anything runs.
    """
    run = PipelineRun.create(
        trigger=trigger,
        stages=[build_stage(stage) for stage in definition.stages],
        variables={**definition.variables, **(variables or {})},
        working_dir=working_dir,
    )
    return run, [build_gate(gate) for gate in definition.gates]
