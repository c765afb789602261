"""
CLI Module

Architectural Intent:
- Command-line interface for Keystone
- Entry point for all user interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug flags for log level control

Exit Codes:
- 0: run succeeded
- 1: run failed (a required step failed or the run was aborted)
- 2: invalid step graph, state mismatch or bad arguments
"""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Optional

from keystone.application.dtos.run_dtos import RunOptions
from keystone.application.use_cases.deploy_applications import DEPLOY_RUN_ID
from keystone.application.use_cases.run_installation import INSTALL_RUN_ID
from keystone.domain.errors import (
    GraphValidationError,
    KeystoneError,
    StateFingerprintMismatchError,
)
from keystone.infrastructure.config import load_config
from keystone.infrastructure.logging import (
    attach_run_log,
    configure_logging,
    level_from_flags,
)
from keystone.infrastructure.repositories.json_state_store import StateFileError
from keystone.presentation.reporting import (
    ProgressPrinter,
    render_plan,
    render_state,
    render_summary,
    write_report,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _csv(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _add_run_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--resume", action="store_true", help="Skip steps completed by a previous run"
    )
    parser.add_argument(
        "--force", action="store_true", help="With --resume, rerun completed steps"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Show what would run; change nothing"
    )
    parser.add_argument(
        "--deadline", type=float, help="Run-level deadline in seconds"
    )


def _add_path_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workspace", "-w", help="Workspace directory")
    parser.add_argument("--state-file", help="State file path")


def _add_filter_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--skip-steps", help="Comma-separated steps to skip")
    group.add_argument("--steps-only", help="Comma-separated steps to run exclusively")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Keystone: resumable installation orchestrator"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit structured JSON logs"
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to config file (keystone.json)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    install_parser = subparsers.add_parser(
        "install", help="Run the full installation workflow"
    )
    _add_run_flags(install_parser)
    _add_path_flags(install_parser)
    _add_filter_flags(install_parser)
    install_parser.add_argument(
        "--parallel", action="store_true", help="Run independent steps concurrently"
    )
    install_parser.add_argument(
        "--max-workers", type=int, help="Concurrency cap within a level (default 5)"
    )
    install_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Keep running independent steps after a required failure",
    )
    install_parser.add_argument(
        "--atomic",
        action="store_true",
        help="Roll back completed steps when a required step fails",
    )
    install_parser.add_argument("--report-file", help="Report output path")

    deploy_parser = subparsers.add_parser(
        "deploy", help="Run only the Helm deployment workflow"
    )
    _add_run_flags(deploy_parser)
    _add_path_flags(deploy_parser)
    deploy_parser.add_argument(
        "--charts-only", action="store_true", help="Only resolve and deploy charts"
    )
    deploy_parser.add_argument(
        "--no-atomic", action="store_true", help="Do not roll back on failure"
    )
    deploy_parser.add_argument(
        "--skip-health-check", action="store_true", help="Skip the health-check step"
    )

    plan_parser = subparsers.add_parser("plan", help="Print the execution plan")
    _add_filter_flags(plan_parser)
    plan_parser.add_argument(
        "--parallel", action="store_true", help="Show levels as run in parallel mode"
    )

    status_parser = subparsers.add_parser("status", help="Show saved run state")
    _add_path_flags(status_parser)
    status_parser.add_argument(
        "--deploy", action="store_true", help="Show the standalone deploy state"
    )

    clear_parser = subparsers.add_parser("clear-state", help="Delete saved run state")
    _add_path_flags(clear_parser)
    clear_parser.add_argument(
        "--deploy", action="store_true", help="Clear the standalone deploy state"
    )

    dash_parser = subparsers.add_parser("dash", help="Launch the state dashboard")
    _add_path_flags(dash_parser)
    dash_parser.add_argument(
        "--interval", "-i", type=float, default=2.0, help="Refresh interval in seconds"
    )

    return parser


def _install_options(args, execution) -> RunOptions:
    return RunOptions(
        run_id=INSTALL_RUN_ID,
        resume=args.resume,
        force=args.force,
        parallel=args.parallel or execution.parallel,
        max_workers=args.max_workers or execution.max_workers,
        continue_on_error=args.continue_on_error or execution.continue_on_error,
        dry_run=args.dry_run,
        atomic=args.atomic or execution.atomic,
        skip_steps=_csv(args.skip_steps),
        steps_only=_csv(args.steps_only),
        deadline_seconds=args.deadline or execution.deadline_seconds or None,
    )


async def _install(args, config) -> int:
    from keystone.composition_root import create_container

    options = _install_options(args, config.execution)
    container = create_container(config)
    ProgressPrinter().attach(container.event_bus)
    if not options.dry_run:
        attach_run_log(config.log_dir)

    print(
        f"[*] Installing (workspace: {config.workspace}, "
        f"state: {config.state_file})"
    )
    result = await container.run_installation.execute(options)
    print(render_summary(result))

    if not options.dry_run:
        report = write_report(result, config.report_file)
        print(f"[*] Report written to {report}")
    if not result.success:
        print("[*] Fix the failure and rerun with --resume to continue.")
    return EXIT_OK if result.success else EXIT_FAILED


async def _deploy(args, config) -> int:
    from keystone.composition_root import create_container

    options = RunOptions(
        run_id=DEPLOY_RUN_ID,
        resume=args.resume,
        force=args.force,
        dry_run=args.dry_run,
        atomic=config.deployment.atomic and not args.no_atomic,
        deadline_seconds=args.deadline or None,
    )
    container = create_container(config)
    ProgressPrinter().attach(container.event_bus)
    if not options.dry_run:
        attach_run_log(config.log_dir)

    print(f"[*] Deploying {len(config.deployment.charts)} chart(s)...")
    result = await container.deploy_applications.run(
        options,
        charts_only=args.charts_only,
        skip_health_check=args.skip_health_check or None,
    )
    print(render_summary(result))
    return EXIT_OK if result.success else EXIT_FAILED


async def _plan(args, config) -> int:
    from keystone.composition_root import create_container

    container = create_container(config)
    options = RunOptions(
        run_id=INSTALL_RUN_ID,
        skip_steps=_csv(args.skip_steps),
        steps_only=_csv(args.steps_only),
    )
    plan = container.run_installation.plan(options)
    print(render_plan(plan if args.parallel else plan.as_sequential()))
    return EXIT_OK


async def _status(args, config) -> int:
    from keystone.infrastructure.repositories.json_state_store import JsonStateStore

    path = config.deploy_state_file if args.deploy else config.state_file
    state = JsonStateStore(path).peek()
    if state is None:
        print(f"[*] No saved state at {path}")
        return EXIT_OK
    print(render_state(state))
    return EXIT_OK


async def _clear_state(args, config) -> int:
    from keystone.infrastructure.repositories.json_state_store import JsonStateStore

    path = config.deploy_state_file if args.deploy else config.state_file
    run_id = DEPLOY_RUN_ID if args.deploy else INSTALL_RUN_ID
    if await JsonStateStore(path).clear(run_id):
        print(f"[+] Cleared state at {path}")
    else:
        print(f"[*] No saved state at {path}")
    return EXIT_OK


async def _dash(args, config) -> int:
    from keystone.presentation.tui.dashboard import StateDashboard

    app = StateDashboard(str(config.state_file), refresh_interval=args.interval)
    await app.run_async()
    return EXIT_OK


COMMANDS = {
    "install": _install,
    "deploy": _deploy,
    "plan": _plan,
    "status": _status,
    "clear-state": _clear_state,
    "dash": _dash,
}


async def async_main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    verbose = args.verbose or args.debug

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return EXIT_USAGE

    config = load_config(args.config)
    configure_logging(
        level=level_from_flags(args.verbose, args.debug, default=config.log_level),
        json_format=args.json_logs,
    )
    config = config.with_overrides(
        workspace=getattr(args, "workspace", None),
        state_file=getattr(args, "state_file", None),
        report_file=getattr(args, "report_file", None),
    )

    try:
        return await handler(args, config)
    except (GraphValidationError, StateFingerprintMismatchError) as e:
        print(f"[-] {e}")
        return EXIT_USAGE
    except (StateFileError, ValueError) as e:
        print(f"[-] Invalid input: {e}")
        if verbose:
            traceback.print_exc()
        return EXIT_USAGE
    except KeyboardInterrupt:
        print("\n[*] Interrupted; state saved. Rerun with --resume to continue.")
        return EXIT_FAILED
    except KeystoneError as e:
        print(f"[-] {e}")
        if verbose:
            traceback.print_exc()
        return EXIT_FAILED


def main():
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
