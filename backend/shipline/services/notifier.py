"""Reports a run's terminal status back to where it was triggered."""

import logging
from typing import Protocol

from shipline.exceptions import NotifyError
from shipline.models.run import PipelineRun, RunStatus
from shipline.models.stage import StageStatus
from shipline.models.trigger import TriggerContext

logger = logging.getLogger(__name__)

_HEADLINES = {
    RunStatus.succeeded: "## ✅ Pipeline succeeded",
    RunStatus.failed: "## ❌ Pipeline failed",
    RunStatus.denied: "## ⛔ Pipeline denied",
}

_STAGE_ICONS = {
    StageStatus.success: "✅",
    StageStatus.failure: "❌",
    StageStatus.skipped: "⏭️",
}

OUTPUT_TAIL_LINES = 20


class NotificationSink(Protocol):
    async def post(self, trigger: TriggerContext, message: str) -> None:
        ...


class LogSink:
    """Writes summaries to the log instead of a remote service."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    async def post(self, trigger: TriggerContext, message: str) -> None:
        self.messages.append(message)
        logger.info("Summary for %s:\n%s", trigger.describe(), message)


def render_summary(run: PipelineRun) -> str:
    """Markdown summary: headline, trigger, then one line per stage."""
    lines = [
        _HEADLINES.get(run.status, f"## Pipeline {run.status.value}"),
        "",
        f"Run `{run.id}` for {run.trigger.describe()}"
        + (f" by @{run.trigger.actor}" if run.trigger.actor else ""),
        "",
    ]

    if run.status is RunStatus.denied and run.denial is not None:
        lines.append(f"> Denied by **{run.denial.gate}**: {run.denial.reason}")
        lines.append("")
    elif run.error:
        lines.append(f"> {run.error}")
        lines.append("")

    for stage in run.stages:
        icon = _STAGE_ICONS.get(stage.status, "•")
        entry = f"- {icon} `{stage.id}`: {stage.status.value}"
        if stage.result is not None:
            entry += f" ({stage.result.duration:.1f}s)"
            if not stage.result.succeeded:
                entry += f": {stage.result.detail}"
        elif stage.skip_reason:
            entry += f": {stage.skip_reason}"
        lines.append(entry)

    for stage in run.stages_with(StageStatus.failure):
        output = stage.result.output if stage.result else ""
        if not output:
            continue
        tail = "\n".join(output.splitlines()[-OUTPUT_TAIL_LINES:])
        lines.extend(
            [
                "",
                f"<details><summary>{stage.id} output</summary>",
                "",
                "```",
                tail,
                "```",
                "</details>",
            ]
        )

    return "\n".join(lines)


class Notifier:
    """Posts a run summary through a sink. Best-effort: errors are only logged."""

    def __init__(self, sink: NotificationSink) -> None:
        self.sink = sink

    async def notify(self, run: PipelineRun) -> None:
        message = render_summary(run)
        try:
            await self.sink.post(run.trigger, message)
        except NotifyError as exc:
            logger.warning("Notification for run %s failed: %s", run.id, exc)
        except Exception:
            logger.exception("Notification sink raised unexpectedly for run %s", run.id)
