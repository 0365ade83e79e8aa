"""shipline CLI entry point."""

import argparse
import asyncio
import logging
import sys

from shipline.config import Settings, get_settings
from shipline.exceptions import PipelineConfigError
from shipline.models.run import PipelineRun, RunStatus
from shipline.models.trigger import EventKind, TriggerContext
from shipline.services.gates import Gate
from shipline.services.github_service import GitHubService, InMemoryPullRequests
from shipline.services.notifier import LogSink, Notifier
from shipline.services.orchestrator import Orchestrator
from shipline.services.pipeline_loader import build_run, load_definition
from shipline.utils.logging import setup_logging
from shipline.utils.run_history import RunHistory

logger = logging.getLogger("shipline.cli")

EXIT_CODES = {
    RunStatus.succeeded: 0,
    RunStatus.failed: 1,
    RunStatus.denied: 2,
}
EXIT_CONFIG_ERROR = 3


def _parse_variables(pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise PipelineConfigError(f"Expected KEY=VALUE, got {pair!r}")
        variables[key] = value
    return variables


async def _execute(
    settings: Settings, run: PipelineRun, gates: list[Gate]
) -> PipelineRun:
    if settings.github.enabled:
        async with GitHubService(settings.github) as github:
            orchestrator = Orchestrator.from_settings(
                settings, lookup=github, notifier=Notifier(github)
            )
            return await orchestrator.run(run, gates)

    logger.info("GitHub not configured; using local lookup and log notifications")
    orchestrator = Orchestrator.from_settings(
        settings, lookup=InMemoryPullRequests(), notifier=Notifier(LogSink())
    )
    return await orchestrator.run(run, gates)


def cmd_run(args: argparse.Namespace) -> int:
    """Run a pipeline definition for one trigger."""
    settings = get_settings()
    try:
        definition = load_definition(args.pipeline)
        trigger = TriggerContext(
            event=EventKind(args.event),
            branch=args.branch,
            ref=args.ref,
            actor=args.actor,
            action=args.action,
            pull_request=args.pr,
        )
        working_dir = args.workdir or (str(settings.working_dir) if settings.working_dir else None)
        run, gates = build_run(
            definition, trigger, _parse_variables(args.var), working_dir=working_dir
        )
        run = asyncio.run(_execute(settings, run, gates))
    except PipelineConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    print(f"{run.id} {run.status.value}")
    return EXIT_CODES[run.status]


def cmd_validate(args: argparse.Namespace) -> int:
    """Check a pipeline definition without running it."""
    try:
        definition = load_definition(args.pipeline)
        trigger = TriggerContext(event=EventKind.manual, branch="validate")
        run, gates = build_run(definition, trigger)
    except PipelineConfigError as exc:
        print(f"Invalid: {exc}")
        return EXIT_CONFIG_ERROR

    print(f"Pipeline {definition.name}: {len(gates)} gate(s)")
    for index, batch in enumerate(run.graph.batches(), start=1):
        print(f"  batch {index}: {', '.join(batch)}")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Show recorded runs."""
    settings = get_settings()
    if settings.history_path is None:
        print("No history configured (set SHIPLINE_HISTORY_PATH)")
        return EXIT_CONFIG_ERROR

    history = RunHistory(settings.history_path)
    records = history.records()[-args.limit :]
    if not records:
        print("No runs recorded")
        return 0
    for record in records:
        trigger = record.get("trigger", {})
        print(
            f"{record['id']}  {record['status']:<9}  "
            f"{trigger.get('event', '?')} -> {trigger.get('branch', '?')}  "
            f"{record.get('finished_at') or ''}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shipline", description="Deployment pipeline orchestrator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a pipeline")
    run_parser.add_argument("pipeline", help="Path to a pipeline YAML file")
    run_parser.add_argument(
        "--event", choices=[kind.value for kind in EventKind], default=EventKind.manual.value
    )
    run_parser.add_argument("--branch", required=True, help="Target branch")
    run_parser.add_argument("--ref", default="", help="Source reference")
    run_parser.add_argument("--actor", default="", help="Who triggered the run")
    run_parser.add_argument("--action", default="", help="Event action, e.g. enqueued")
    run_parser.add_argument("--pr", type=int, default=None, help="Originating pull request")
    run_parser.add_argument(
        "--var", action="append", default=[], metavar="KEY=VALUE", help="Run variable"
    )
    run_parser.add_argument("--workdir", default=None, help="Working directory for stages")
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Validate a pipeline")
    validate_parser.add_argument("pipeline", help="Path to a pipeline YAML file")
    validate_parser.set_defaults(func=cmd_validate)

    history_parser = subparsers.add_parser("history", help="Show recorded runs")
    history_parser.add_argument("--limit", type=int, default=20)
    history_parser.set_defaults(func=cmd_history)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(get_settings().log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
