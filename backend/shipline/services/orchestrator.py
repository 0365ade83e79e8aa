"""Orchestrates a pipeline run: gating, batch execution, notification."""

import asyncio
import logging
from collections.abc import Sequence

from shipline.config.settings import Settings
from shipline.exceptions import ExternalServiceError, GateDenied, PipelineConfigError
from shipline.models.gate import GateDecision
from shipline.models.run import PipelineRun, RunStatus
from shipline.models.stage import Stage, StageStatus
from shipline.models.trigger import PullRequest
from shipline.services.executor import Executor
from shipline.services.gates import Gate
from shipline.services.github_service import PullRequestLookup
from shipline.services.notifier import Notifier
from shipline.utils.logging import RunLogger
from shipline.utils.run_history import RunHistory

logger = logging.getLogger(__name__)


class Orchestrator:
    """Manages the lifecycle of a pipeline run.

    pending -> running -> succeeded | failed | denied. Stages in one
    readiness batch run concurrently; batches run one after another. After a
    failure, stages already running finish and every stage not yet started
    is skipped. Nothing is retried.
    """

    def __init__(
        self,
        executor: Executor | None = None,
        lookup: PullRequestLookup | None = None,
        notifier: Notifier | None = None,
        history: RunHistory | None = None,
        max_parallel: int = 4,
    ) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.executor = executor or Executor()
        self.lookup = lookup
        self.notifier = notifier
        self.history = history
        self.max_parallel = max_parallel

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        lookup: PullRequestLookup | None = None,
        notifier: Notifier | None = None,
    ) -> "Orchestrator":
        history = RunHistory(settings.history_path) if settings.history_path else None
        return cls(
            executor=Executor(default_timeout=settings.stage_timeout_seconds),
            lookup=lookup,
            notifier=notifier,
            history=history,
            max_parallel=settings.max_parallel_stages,
        )

    async def run(self, run: PipelineRun, gates: Sequence[Gate] = ()) -> PipelineRun:
        """Execute the full pipeline for ``run`` and return it in a terminal state."""
        if any(gate.query is not None for gate in gates) and self.lookup is None:
            raise PipelineConfigError("A gate needs a pull request lookup but none is configured")

        log = RunLogger(run.id)
        run.transition(RunStatus.running)
        log.info("Run started for %s (%d stages)", run.trigger.describe(), len(run.stages))

        try:
            await self._check_gates(run, gates)
        except GateDenied as denied:
            run.denial = GateDecision.deny(denied.gate, denied.reason)
            self._skip_remaining(run, f"run denied by {denied.gate}", log)
            run.transition(RunStatus.denied)
            log.warning("Run denied by %s: %s", denied.gate, denied.reason)
        except ExternalServiceError as exc:
            run.error = f"Gate lookup failed: {exc}"
            self._skip_remaining(run, "gate lookup failed", log)
            run.transition(RunStatus.failed)
            log.error("Run failed before any stage ran: %s", exc)
        else:
            await self._execute(run, log)
            run.transition(run.derive_status())
            if run.status is RunStatus.failed:
                failed = ", ".join(stage.id for stage in run.stages_with(StageStatus.failure))
                log.error("Run failed (stages: %s)", failed)
            else:
                log.info("Run succeeded")

        await self._finish(run)
        return run

    async def _check_gates(self, run: PipelineRun, gates: Sequence[Gate]) -> None:
        """Raise GateDenied for the first gate that denies the run."""
        cache: dict[tuple[str, str], list[PullRequest]] = {}
        for gate in gates:
            matches: list[PullRequest] = []
            query = gate.query
            if query is not None and gate.applies_to(run.trigger):
                key = (query.branch, query.state)
                if key not in cache:
                    cache[key] = await self.lookup.find_pull_requests(query.branch, query.state)
                matches = cache[key]
            decision = gate.evaluate(run.trigger, matches)
            logger.debug("Gate %s: allowed=%s (%s)", decision.gate, decision.allowed, decision.reason)
            if not decision.allowed:
                raise GateDenied(decision.gate, decision.reason)

    async def _execute(self, run: PipelineRun, log: RunLogger) -> None:
        semaphore = asyncio.Semaphore(self.max_parallel)
        failed: list[str] = []

        for batch in run.graph.batches():
            runnable: list[Stage] = []
            for stage_id in batch:
                stage = run.stage(stage_id)
                reason = self._halt_reason(failed) or self._skip_reason(run, stage)
                if reason:
                    stage.skip(reason)
                    log.stage_skipped(stage.id, reason)
                else:
                    runnable.append(stage)

            if runnable:
                await asyncio.gather(
                    *(self._run_stage(run, stage, semaphore, failed, log) for stage in runnable)
                )

    @staticmethod
    def _halt_reason(failed: list[str]) -> str:
        return f"halted after {', '.join(failed)} failed" if failed else ""

    @staticmethod
    def _skip_reason(run: PipelineRun, stage: Stage) -> str:
        blocked = [
            dep for dep in stage.needs if run.stage(dep).status is not StageStatus.success
        ]
        if blocked:
            return f"needs {', '.join(blocked)}"
        if not stage.runs_for(run.trigger):
            return f"not run for {run.trigger.event.value} events"
        return ""

    async def _run_stage(
        self,
        run: PipelineRun,
        stage: Stage,
        semaphore: asyncio.Semaphore,
        failed: list[str],
        log: RunLogger,
    ) -> None:
        async with semaphore:
            # Stages still queued for a slot never start once a sibling failed.
            if failed:
                reason = self._halt_reason(failed)
                stage.skip(reason)
                log.stage_skipped(stage.id, reason)
                return
            stage.start()
            log.stage_start(stage.id)
            result = await self.executor.run(stage, run.stage_env(stage), cwd=run.working_dir)
            stage.finish(result)
            log.stage_end(stage.id, stage.status.value, result.detail)
            if stage.status is StageStatus.failure:
                failed.append(stage.id)

    @staticmethod
    def _skip_remaining(run: PipelineRun, reason: str, log: RunLogger) -> None:
        for stage in run.stages:
            if not stage.status.is_terminal:
                stage.skip(reason)
                log.stage_skipped(stage.id, reason)

    async def _finish(self, run: PipelineRun) -> None:
        if self.notifier is not None:
            await self.notifier.notify(run)
        if self.history is not None:
            try:
                self.history.append(run)
            except OSError:
                logger.exception("Could not record run %s in history", run.id)
