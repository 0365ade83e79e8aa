import asyncio
import sys
import threading

import pytest

from shipline.exceptions import ActionError
from shipline.models.result import FailureReason
from shipline.models.stage import Stage
from shipline.services.executor import ActionOutcome, CallableAction, Executor, ShellAction

PYTHON = sys.executable


async def test_shell_action_success_captures_output():
    stage = Stage(id="lint", action=ShellAction([PYTHON, "-c", "print('all clean')"]))

    result = await Executor().run(stage)

    assert result.succeeded
    assert result.exit_code == 0
    assert "all clean" in result.output
    assert result.duration >= 0


async def test_shell_action_non_zero_exit_is_action_error():
    script = "import sys; sys.stderr.write('lint failed'); sys.exit(3)"
    stage = Stage(id="lint", action=ShellAction([PYTHON, "-c", script]))

    result = await Executor().run(stage)

    assert not result.succeeded
    assert result.reason is FailureReason.action_error
    assert result.exit_code == 3
    assert "lint failed" in result.output


async def test_shell_action_receives_env_and_cwd(tmp_path):
    script = "import os; print(os.environ['IMAGE_TAG'], os.getcwd())"
    stage = Stage(id="build", action=ShellAction([PYTHON, "-c", script]))

    result = await Executor().run(stage, env={"IMAGE_TAG": "pr-7"}, cwd=str(tmp_path))

    assert result.succeeded
    assert "pr-7" in result.output
    assert tmp_path.name in result.output


async def test_shell_string_command_uses_shell():
    stage = Stage(id="echo", action=ShellAction("echo $GREETING", inherit_env=True))

    result = await Executor().run(stage, env={"GREETING": "hello"})

    assert result.succeeded
    assert "hello" in result.output


async def test_timeout_records_timeout_failure():
    stage = Stage(
        id="test",
        action=ShellAction([PYTHON, "-c", "import time; time.sleep(10)"]),
        timeout=0.5,
    )

    result = await Executor().run(stage)

    assert result.reason is FailureReason.timeout
    assert "0.5" in result.detail
    assert result.duration < 10


async def test_executor_default_timeout_applies():
    async def slow(env, cwd):
        await asyncio.sleep(5)

    stage = Stage(id="deploy", action=CallableAction(slow))

    result = await Executor(default_timeout=0.1).run(stage)

    assert result.reason is FailureReason.timeout


async def test_callable_action_remote_error():
    def push_image(env, cwd):
        raise ActionError("registry rejected push", exit_code=1)

    stage = Stage(id="build", action=CallableAction(push_image))

    result = await Executor().run(stage)

    assert result.reason is FailureReason.action_error
    assert result.detail == "registry rejected push"
    assert result.exit_code == 1


async def test_callable_action_return_values():
    async def returns_outcome(env, cwd):
        return ActionOutcome(exit_code=0, stdout=env["TARGET"])

    ok = await Executor().run(
        Stage(id="a", action=CallableAction(returns_outcome)), env={"TARGET": "staging"}
    )
    assert ok.succeeded
    assert ok.output == "staging"

    failed = await Executor().run(Stage(id="b", action=CallableAction(lambda env, cwd: 2)))
    assert failed.exit_code == 2
    assert failed.reason is FailureReason.action_error

    text = await Executor().run(Stage(id="c", action=CallableAction(lambda env, cwd: "done")))
    assert text.succeeded
    assert text.output == "done"


async def test_unexpected_exception_is_recorded(caplog):
    def broken(env, cwd):
        raise RuntimeError("kaboom")

    result = await Executor().run(Stage(id="x", action=CallableAction(broken)))

    assert result.reason is FailureReason.action_error
    assert "RuntimeError: kaboom" in result.detail
    assert "raised unexpectedly" in caplog.text


async def test_stage_without_action_fails():
    result = await Executor().run(Stage(id="empty"))

    assert result.reason is FailureReason.action_error


def test_shell_action_rejects_empty_command():
    with pytest.raises(ValueError):
        ShellAction("")


async def test_sync_callable_timeout_does_not_wait_for_thread():
    release = threading.Event()

    def blocking(env, cwd):
        release.wait(5)

    stage = Stage(id="deploy", action=CallableAction(blocking), timeout=0.1)

    try:
        result = await Executor().run(stage)
    finally:
        release.set()

    assert result.reason is FailureReason.timeout
    assert result.duration < 2
