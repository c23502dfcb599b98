from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from engagesync.app import (
    recent_executions,
    reconcile_pair,
    run_daily_pipeline,
    run_tag_rules_only,
    seed_catalog_file,
)
from engagesync.config import configure_logging
from engagesync.domain.model import ExecutionStatus, TriggerSource
from engagesync.domain.pipeline import StopRequest

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from engagesync.domain.model import PipelineExecution

log = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130

# Ctrl+C during a pipeline run asks it to stop after the pair in flight
STOP = StopRequest()


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"Must be positive: {value}")
    return parsed


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile CRM reengagement tags")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the full daily pipeline")
    run.add_argument(
        "--manual",
        action="store_true",
        help="Record the execution as triggered from the CLI instead of cron",
    )

    subparsers.add_parser("tags-only", help="Recalculate engagement and reconcile tags only")

    reconcile = subparsers.add_parser("reconcile", help="Reconcile a single member/product pair")
    reconcile.add_argument("--email", type=str, required=True, help="Member email address")
    reconcile.add_argument("--product", type=str, required=True, help="Product code")

    seed = subparsers.add_parser("seed", help="Load products and levels from a TOML catalog")
    seed.add_argument("file", type=Path, help="Path to the catalog file")

    history = subparsers.add_parser("history", help="Show recent pipeline executions")
    history.add_argument(
        "--limit",
        type=_positive_int,
        default=10,
        help="Number of executions to show (default: %(default)s)",
    )

    return parser.parse_args(list(argv))


def _exit_code(execution: PipelineExecution) -> int:
    if execution.status is ExecutionStatus.FAILED:
        return 1
    if STOP.requested:
        return INTERRUPTED_EXIT_CODE
    return 0


def _log_execution(execution: PipelineExecution) -> None:
    log.info(
        "%s %s %s started=%s duration=%ss summary=%s",
        execution.id,
        execution.status,
        execution.execution_type,
        execution.started_at.isoformat(),
        execution.duration_seconds,
        execution.summary,
    )
    for stage in execution.stages:
        log.info("    %s: %s %s", stage.name, stage.status, dict(stage.stats))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except SystemExit as exc:
        sys.exit(2 if exc.code else 0)

    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    exit_code = 0
    try:
        if parsed_args.command == "run":
            trigger = TriggerSource.CLI if parsed_args.manual else TriggerSource.CRON
            execution = run_daily_pipeline(triggered_by=trigger, stop=STOP)
            _log_execution(execution)
            exit_code = _exit_code(execution)
        elif parsed_args.command == "tags-only":
            execution = run_tag_rules_only(stop=STOP)
            _log_execution(execution)
            exit_code = _exit_code(execution)
        elif parsed_args.command == "reconcile":
            result = reconcile_pair(parsed_args.email, parsed_args.product)
            if not result.success:
                log.error("Reconciliation failed: %s", result.error)
                exit_code = 1
        elif parsed_args.command == "seed":
            seed_catalog_file(parsed_args.file)
        elif parsed_args.command == "history":
            executions = recent_executions(parsed_args.limit)
            if not executions:
                log.info("No pipeline executions recorded yet")
            for execution in executions:
                _log_execution(execution)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except KeyboardInterrupt:
        log.warning("Interrupted by user")
        sys.exit(INTERRUPTED_EXIT_CODE)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C): stop a running pipeline gracefully, else interrupt."""
    if not STOP.requested and STOP.request():
        log.warning("Stop requested (Ctrl+C); finishing the current pair. Press again to abort")
        return
    log.info("Closed by user (Ctrl+C)")
    raise KeyboardInterrupt


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
