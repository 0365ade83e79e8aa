"""Shared fakes for actions, lookups, and notification sinks."""

import asyncio

import pytest

from shipline.exceptions import NotifyError
from shipline.models.stage import Stage
from shipline.models.trigger import EventKind, TriggerContext
from shipline.services.executor import ActionOutcome


class FakeAction:
    """Records invocations and returns a fixed exit code."""

    def __init__(self, exit_code: int = 0, output: str = "", delay: float = 0.0):
        self.exit_code = exit_code
        self.output = output
        self.delay = delay
        self.calls: list[dict] = []

    async def invoke(self, env, cwd):
        self.calls.append({"env": dict(env), "cwd": cwd})
        if self.delay:
            await asyncio.sleep(self.delay)
        return ActionOutcome(exit_code=self.exit_code, stdout=self.output)


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.posts: list[tuple[TriggerContext, str]] = []

    async def post(self, trigger, message):
        self.posts.append((trigger, message))
        if self.fail:
            raise NotifyError("sink unavailable")


def make_stage(stage_id: str, needs=None, exit_code: int = 0, **kwargs) -> Stage:
    return Stage(id=stage_id, needs=needs or [], action=FakeAction(exit_code), **kwargs)


@pytest.fixture
def push_trigger() -> TriggerContext:
    return TriggerContext(event=EventKind.push, branch="staging", ref="feature/x", actor="dev")


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
