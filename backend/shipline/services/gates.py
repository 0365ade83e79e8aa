"""Gates decide whether a pipeline run may start.

Gates are pure: any external state they need (open pull requests) is looked
up by the orchestrator and passed in, so a gate performs no I/O and gives
the same decision for the same inputs.
"""

from collections.abc import Sequence

from pydantic import BaseModel

from shipline.models.gate import GateDecision
from shipline.models.trigger import EventKind, PullRequest, TriggerContext


class PullRequestQuery(BaseModel):
    """The single external lookup a gate asks the engine to perform."""

    branch: str
    state: str = "open"


class Gate:
    """Base class: a named predicate over trigger context and looked-up state."""

    name: str = "gate"

    def __init__(
        self,
        name: str | None = None,
        events: Sequence[EventKind] = (),
        actions: Sequence[str] = (),
    ) -> None:
        if name:
            self.name = name
        self.events = tuple(events)
        self.actions = tuple(actions)

    @property
    def query(self) -> PullRequestQuery | None:
        return None

    def applies_to(self, context: TriggerContext) -> bool:
        """Empty ``events`` means every event; ``actions`` narrows further."""
        if self.events and context.event not in self.events:
            return False
        if self.actions and context.action not in self.actions:
            return False
        return True

    def evaluate(
        self, context: TriggerContext, matches: Sequence[PullRequest] = ()
    ) -> GateDecision:
        if not self.applies_to(context):
            return GateDecision.allow(self.name, f"not applicable to {context.describe()}")
        return self.check(context, matches)

    def check(self, context: TriggerContext, matches: Sequence[PullRequest]) -> GateDecision:
        raise NotImplementedError


class OpenPullRequestGate(Gate):
    """Deny while a pull request in ``state`` exists from ``branch``.

    Keeps release PRs from piling up: a merge into the target is rejected
    until the existing PR from it is merged or closed. One class serves
    both the PR-opened and merge-queue policies via ``events``/``actions``.
    """

    name = "open-pull-request"

    def __init__(
        self,
        branch: str,
        state: str = "open",
        name: str | None = None,
        events: Sequence[EventKind] = (),
        actions: Sequence[str] = (),
    ) -> None:
        super().__init__(name=name, events=events, actions=actions)
        self.branch = branch
        self.state = state

    @property
    def query(self) -> PullRequestQuery:
        return PullRequestQuery(branch=self.branch, state=self.state)

    def check(self, context: TriggerContext, matches: Sequence[PullRequest]) -> GateDecision:
        if not matches:
            return GateDecision.allow(
                self.name, f"no {self.state} pull request from {self.branch}"
            )
        numbers = ", ".join(f"#{pr.number}" for pr in sorted(matches, key=lambda pr: pr.number))
        return GateDecision.deny(
            self.name,
            f"merge rejected: pull request {numbers} from {self.branch} is {self.state}; "
            f"merge or close it before merging into this branch",
        )


class BranchGate(Gate):
    """Allow only runs targeting one of ``branches``."""

    name = "branch"

    def __init__(self, branches: Sequence[str], name: str | None = None, **kwargs) -> None:
        super().__init__(name=name, **kwargs)
        if not branches:
            raise ValueError("BranchGate needs at least one branch")
        self.branches = tuple(branches)

    def check(self, context: TriggerContext, matches: Sequence[PullRequest]) -> GateDecision:
        if context.branch in self.branches:
            return GateDecision.allow(self.name, f"branch {context.branch} is allowed")
        return GateDecision.deny(
            self.name,
            f"branch {context.branch} is not one of {', '.join(self.branches)}",
        )


class EventGate(Gate):
    """Allow only the listed trigger events (and actions, when given)."""

    name = "event"

    def applies_to(self, context: TriggerContext) -> bool:
        return True

    def check(self, context: TriggerContext, matches: Sequence[PullRequest]) -> GateDecision:
        if self.events and context.event not in self.events:
            return GateDecision.deny(self.name, f"event {context.event.value} does not start runs")
        if self.actions and context.action not in self.actions:
            return GateDecision.deny(
                self.name, f"action {context.action or '<none>'} does not start runs"
            )
        return GateDecision.allow(self.name, f"{context.describe()} accepted")


def evaluate(
    gate: Gate, context: TriggerContext, matches: Sequence[PullRequest] = ()
) -> GateDecision:
    """Evaluate ``gate`` against ``context`` and the injected lookup result."""
    return gate.evaluate(context, matches)
