import pytest

from shipline.exceptions import CycleError, PipelineConfigError, RunStateError, StageStateError
from shipline.models.result import ExecutionResult, FailureReason
from shipline.models.run import PipelineRun, RunStatus
from shipline.models.stage import Stage, StageStatus
from shipline.models.trigger import EventKind, TriggerContext


def test_stage_reaches_terminal_state_once():
    stage = Stage(id="lint")
    stage.start()
    stage.finish(ExecutionResult.success("lint"))

    assert stage.status is StageStatus.success
    with pytest.raises(StageStateError):
        stage.skip("late")
    with pytest.raises(StageStateError):
        stage.finish(ExecutionResult.success("lint"))


def test_failed_result_marks_stage_failed():
    stage = Stage(id="test")
    stage.start()
    stage.finish(ExecutionResult.failure("test", FailureReason.action_error, "boom", exit_code=2))

    assert stage.status is StageStatus.failure
    assert stage.result.exit_code == 2


def test_execution_result_is_frozen():
    result = ExecutionResult.success("lint")
    with pytest.raises(Exception):
        result.detail = "changed"


def test_stage_event_filter(push_trigger):
    assert Stage(id="a").runs_for(push_trigger)
    assert Stage(id="b", when=[EventKind.push]).runs_for(push_trigger)
    assert not Stage(id="c", when=[EventKind.merge_queue]).runs_for(push_trigger)


def test_create_rejects_cycles(push_trigger):
    stages = [Stage(id="a", needs=["b"]), Stage(id="b", needs=["a"])]

    with pytest.raises(CycleError):
        PipelineRun.create(push_trigger, stages)


def test_run_transitions(push_trigger):
    run = PipelineRun.create(push_trigger, [Stage(id="a")])

    with pytest.raises(RunStateError):
        run.transition(RunStatus.succeeded)
    run.transition(RunStatus.running)
    run.transition(RunStatus.denied)

    assert run.is_terminal
    assert run.finished_at is not None
    with pytest.raises(RunStateError):
        run.transition(RunStatus.running)


def test_stage_env_overrides_run_variables(push_trigger):
    stage = Stage(id="deploy", env={"ENVIRONMENT": "staging"})
    run = PipelineRun.create(
        push_trigger, [stage], variables={"ENVIRONMENT": "dev", "APP_NAME": "demoapp"}
    )

    env = run.stage_env(stage)

    assert env["ENVIRONMENT"] == "staging"
    assert env["APP_NAME"] == "demoapp"


def test_stage_env_carries_trigger(push_trigger):
    trigger = push_trigger.model_copy(update={"pull_request": 7})
    stage = Stage(id="build")
    run = PipelineRun.create(trigger, [stage], variables={"ACTOR": "release-bot"})

    env = run.stage_env(stage)

    assert env["PR_NUMBER"] == "7"
    assert env["TARGET_BRANCH"] == "staging"
    assert env["EVENT"] == "push"
    assert env["RUN_ID"] == run.id
    assert env["ACTOR"] == "release-bot"


def test_stage_env_omits_missing_pr_number(push_trigger):
    stage = Stage(id="build")
    run = PipelineRun.create(push_trigger, [stage])

    assert "PR_NUMBER" not in run.stage_env(stage)


def test_constructor_builds_graph(push_trigger):
    run = PipelineRun(
        trigger=push_trigger, stages=[Stage(id="lint"), Stage(id="test", needs=["lint"])]
    )

    assert list(run.graph.batches()) == [("lint",), ("test",)]


def test_constructor_rejects_cycles_and_unknown_needs(push_trigger):
    with pytest.raises(CycleError):
        PipelineRun(
            trigger=push_trigger,
            stages=[Stage(id="a", needs=["b"]), Stage(id="b", needs=["a"])],
        )
    with pytest.raises(PipelineConfigError):
        PipelineRun(trigger=push_trigger, stages=[Stage(id="a", needs=["missing"])])


def test_derive_status_requires_terminal_stages(push_trigger):
    run = PipelineRun.create(push_trigger, [Stage(id="lint")])
    run.transition(RunStatus.running)

    with pytest.raises(RunStateError):
        run.derive_status()


def test_trigger_describe():
    trigger = TriggerContext(event=EventKind.merge_queue, action="enqueued", branch="staging")

    assert trigger.describe() == "merge_queue:enqueued -> staging"
