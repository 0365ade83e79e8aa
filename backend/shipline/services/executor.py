"""Runs stage actions and records their outcomes."""

import asyncio
import contextlib
import inspect
import logging
import os
import shlex
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pydantic import BaseModel

from shipline.exceptions import ActionError, ActionTimeout
from shipline.models.result import ExecutionResult, FailureReason
from shipline.models.stage import Stage

logger = logging.getLogger(__name__)


class ActionOutcome(BaseModel):
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class Action(Protocol):
    """Opaque command descriptor invoked by the executor."""

    async def invoke(self, env: dict[str, str], cwd: str | None) -> ActionOutcome:
        ...


class ShellAction:
    """Runs a command in a subprocess, capturing stdout and stderr.

    A string command goes through the shell; a list is exec'd directly.
    The process is killed if the invocation is cancelled (e.g. on timeout).
    """

    def __init__(self, command: str | list[str], inherit_env: bool = True) -> None:
        if not command:
            raise ValueError("ShellAction command cannot be empty")
        self.command = command
        self.inherit_env = inherit_env

    def __repr__(self) -> str:
        if isinstance(self.command, str):
            return f"ShellAction({self.command!r})"
        return f"ShellAction({shlex.join(self.command)!r})"

    async def invoke(self, env: dict[str, str], cwd: str | None) -> ActionOutcome:
        full_env = {**os.environ, **env} if self.inherit_env else dict(env)
        if isinstance(self.command, str):
            proc = await asyncio.create_subprocess_shell(
                self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
                cwd=cwd,
            )
        else:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
                cwd=cwd,
            )

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise

        return ActionOutcome(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


class CallableAction:
    """Wraps a Python callable (e.g. an API call) as an action.

    The callable receives ``(env, cwd)``. Sync callables run in a worker
    thread. Return an ActionOutcome, an exit code, a string of output, or
    None for success; raise ActionError for remote failures.

    A thread cannot be killed: on timeout the stage is recorded as timed out
    but a sync callable keeps running until it returns on its own. Use an
    async callable or a ShellAction for work that may need to be cut off.
    """

    def __init__(self, fn: Callable[[dict[str, str], str | None], Any], name: str | None = None):
        if not callable(fn):
            raise TypeError(f"Action fn must be callable (type={type(fn).__name__})")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "callable")

    def __repr__(self) -> str:
        return f"CallableAction({self.name})"

    async def invoke(self, env: dict[str, str], cwd: str | None) -> ActionOutcome:
        if inspect.iscoroutinefunction(self.fn):
            value = await self.fn(env, cwd)
        else:
            value = await asyncio.to_thread(self.fn, env, cwd)
            if inspect.isawaitable(value):
                value = await value
        return _coerce_outcome(value)


def _coerce_outcome(value: Any) -> ActionOutcome:
    if value is None:
        return ActionOutcome()
    if isinstance(value, ActionOutcome):
        return value
    if isinstance(value, bool):
        return ActionOutcome(exit_code=0 if value else 1)
    if isinstance(value, int):
        return ActionOutcome(exit_code=value)
    if isinstance(value, str):
        return ActionOutcome(stdout=value)
    raise TypeError(f"Unsupported action return type: {type(value).__name__}")


class Executor:
    """Runs one stage's action under a timeout and records the outcome.

    Never raises for action failures; they come back as failed results.
    Side effects belong to the action, not the executor.
    """

    def __init__(self, default_timeout: float = 1800.0) -> None:
        self.default_timeout = default_timeout

    async def run(
        self,
        stage: Stage,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ) -> ExecutionResult:
        """Invoke the stage's action and return its ExecutionResult."""
        if stage.action is None:
            return ExecutionResult.failure(
                stage.id, FailureReason.action_error, "Stage has no action"
            )

        limit = stage.timeout or self.default_timeout
        started = time.monotonic()

        def elapsed() -> float:
            return round(time.monotonic() - started, 3)

        try:
            outcome = _coerce_outcome(
                await asyncio.wait_for(_invoke(stage.action, dict(env or {}), cwd), timeout=limit)
            )
        except (asyncio.TimeoutError, ActionTimeout):
            return ExecutionResult.failure(
                stage.id,
                FailureReason.timeout,
                f"Timed out after {limit:g}s",
                duration=elapsed(),
            )
        except ActionError as exc:
            return ExecutionResult.failure(
                stage.id,
                FailureReason.action_error,
                str(exc),
                exit_code=exc.exit_code,
                duration=elapsed(),
            )
        except Exception as exc:
            logger.exception("Action for stage %s raised unexpectedly", stage.id)
            return ExecutionResult.failure(
                stage.id,
                FailureReason.action_error,
                f"{type(exc).__name__}: {exc}",
                duration=elapsed(),
            )

        if outcome.exit_code != 0:
            return ExecutionResult.failure(
                stage.id,
                FailureReason.action_error,
                f"Exited with code {outcome.exit_code}",
                exit_code=outcome.exit_code,
                output=outcome.output,
                duration=elapsed(),
            )
        return ExecutionResult.success(
            stage.id, exit_code=0, output=outcome.output, duration=elapsed()
        )


def _invoke(action: Any, env: dict[str, str], cwd: str | None) -> Awaitable[Any]:
    invoke = getattr(action, "invoke", None)
    if invoke is None:
        raise TypeError(f"Stage action has no invoke() (type={type(action).__name__})")
    return invoke(env, cwd)
