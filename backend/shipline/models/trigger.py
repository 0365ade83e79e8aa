from enum import Enum

from pydantic import BaseModel


class EventKind(str, Enum):
    manual = "manual"
    push = "push"
    pull_request = "pull_request"
    merge_queue = "merge_queue"


class TriggerContext(BaseModel):
    """What fired the run and where its summary should be reported."""

    event: EventKind
    branch: str
    ref: str = ""
    actor: str = ""
    action: str = ""
    pull_request: int | None = None

    def describe(self) -> str:
        """Short human-readable label, e.g. ``merge_queue:enqueued -> staging``."""
        event = self.event.value
        if self.action:
            event = f"{event}:{self.action}"
        return f"{event} -> {self.branch}"

    def as_env(self) -> dict[str, str]:
        """Environment variables describing the trigger.

        ``PR_NUMBER`` is left out when no pull request originated the run, so
        commands can fail on it with ``${PR_NUMBER:?...}``.
        """
        env = {
            "EVENT": self.event.value,
            "EVENT_ACTION": self.action,
            "TARGET_BRANCH": self.branch,
            "SOURCE_REF": self.ref,
            "ACTOR": self.actor,
        }
        if self.pull_request is not None:
            env["PR_NUMBER"] = str(self.pull_request)
        return env


class PullRequest(BaseModel):
    number: int
    title: str = ""
    head: str = ""
    base: str = ""
    state: str = "open"
    url: str = ""
