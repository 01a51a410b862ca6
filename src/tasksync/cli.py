"""tasksync CLI.

Subcommands:
  sync      -> dry run, confirm, then reconcile tasks with GitHub issues
  hook      -> handle a file-change event for a task file
  validate  -> structural checks on a task file (no network)
  doctor    -> configuration, token and connectivity diagnostics

Exit codes: 0 on success (including runs with per-task errors), 1 on a
run-level failure, 2 on usage errors.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Any

from .config import CONFIG_DEFAULT, TOKEN_ENV_VARS, SyncConfig
from .errors import ConfigError
from .github_issues import build_client
from .hook import CHANGE_TYPES, STATUS_BUSY, STATUS_FAILED, HookEvent, SyncHook
from .orchestrator import SyncOrchestrator
from .parser import validate_tasks
from .runtime import execute_command, prepare_config
from .ux import (
    print_error,
    print_info,
    print_success,
    print_warning,
    render_dry_run,
    render_run_report,
)

REPO_HELP = "Override target repository (owner/repo)"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="tasksync", description="Sync markdown checkbox tasks to GitHub issues"
    )
    p.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    ps = sub.add_parser("sync", help="Reconcile tasks with GitHub issues")
    ps.add_argument("--config", default=CONFIG_DEFAULT)
    ps.add_argument("--repo", help=REPO_HELP)
    ps.add_argument("--file", help="Task file (default: source_file from config)")
    ps.add_argument("--dry-run", action="store_true", help="Report only; no mutations")
    ps.add_argument("--auto", action="store_true", help="Skip the confirmation prompt")
    ps.add_argument(
        "--remote-plan",
        action="store_true",
        help="During --dry-run, look up issues and report planned actions",
    )
    ps.add_argument("--summary-json", help="Write the run summary to this path")

    ph = sub.add_parser("hook", help="Handle a task file change event")
    ph.add_argument("--config", default=CONFIG_DEFAULT)
    ph.add_argument("--repo", help=REPO_HELP)
    ph.add_argument("--file", required=True, help="Changed task file")
    ph.add_argument("--change-type", choices=CHANGE_TYPES, default="modified")
    ph.add_argument("--auto", action="store_true", help="Sync without confirmation")
    ph.add_argument("--summary-json", help="Write the run summary to this path")

    pv = sub.add_parser("validate", help="Check a task file for structural problems")
    pv.add_argument("--config", default=CONFIG_DEFAULT)
    pv.add_argument("--file", help="Task file (default: source_file from config)")

    pd = sub.add_parser("doctor", help="Diagnose configuration, token and connectivity")
    pd.add_argument("--config", default=CONFIG_DEFAULT)
    pd.add_argument("--repo", help=REPO_HELP)
    return p


def _source(cfg: SyncConfig, args: argparse.Namespace) -> Path:
    return Path(args.file) if getattr(args, "file", None) else cfg.source_file


def _cmd_sync(cfg: SyncConfig, args: argparse.Namespace) -> int:
    source = _source(cfg, args)
    if not source.exists():
        print_error(f"Task file not found: {source}")
        return 1
    orchestrator = SyncOrchestrator(cfg)
    if args.dry_run:
        report = orchestrator.dry_run(
            source.read_text(encoding="utf-8"),
            source_path=str(source),
            plan_remote=args.remote_plan,
        )
        render_dry_run(report)
        return 0 if report.succeeded else 1
    return _run_hook(cfg, orchestrator, HookEvent(str(source)), interactive=not args.auto)


def _cmd_hook(cfg: SyncConfig, args: argparse.Namespace) -> int:
    event = HookEvent(args.file, change_type=args.change_type)
    return _run_hook(cfg, SyncOrchestrator(cfg), event, interactive=not args.auto)


def _run_hook(
    cfg: SyncConfig, orchestrator: SyncOrchestrator, event: HookEvent, *, interactive: bool
) -> int:
    result = SyncHook(cfg, orchestrator).handle(event, interactive=interactive)
    if result.report is not None:
        render_run_report(result.report)
    elif result.dry_run is not None and not interactive:
        render_dry_run(result.dry_run)
    if result.status in (STATUS_FAILED, STATUS_BUSY):
        print_error(result.message)
        return 1
    if result.report is None:
        print_info(result.message)
    return 0


def _cmd_validate(cfg: SyncConfig, args: argparse.Namespace) -> int:
    source = _source(cfg, args)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        print_error(f"Cannot read {source}: {exc}")
        return 1
    problems = validate_tasks(text)
    if problems:
        print_error(f"{len(problems)} problem(s) in {source}:")
        for problem in problems:
            print(f"  • {problem}")
        return 1
    print_success(f"{source} is valid")
    return 0


def _doctor_checks(cfg: SyncConfig, warnings: list[str], problems: list[str]) -> None:
    print(f"[doctor] repository: {cfg.repository or 'None'}")
    try:
        cfg.validate(live=False)
    except ConfigError as exc:
        problems.append(str(exc))
    if not cfg.repository:
        problems.append("No repository configured (repository / GITHUB_REPOSITORY)")
    token_var = next((name for name in TOKEN_ENV_VARS if os.environ.get(name)), None)
    print(f"[doctor] token: {'present via ' + token_var if token_var else 'missing'}")
    if cfg.mock:
        print("[doctor] mock mode detected (TASKSYNC_MOCK=1)")
    elif not cfg.token:
        problems.append(f"No GitHub token found (set one of {', '.join(TOKEN_ENV_VARS)})")
    if not cfg.source_file.exists():
        warnings.append(f"Task file {cfg.source_file} does not exist")
    if not cfg.enabled:
        warnings.append("Sync is disabled (enabled: false)")
    if problems:
        return
    status = build_client(cfg).test_connection()
    if status.success:
        print(f"[doctor] connection: {status.message}")
    else:
        problems.append(f"Connection test failed: {status.message}")


def _cmd_doctor(cfg: SyncConfig, args: argparse.Namespace) -> int:
    warnings: list[str] = []
    problems: list[str] = []
    _doctor_checks(cfg, warnings, problems)
    for w in warnings:
        print_warning(w)
    if problems:
        print_error(f"{len(problems)} problem(s) detected:")
        for p in problems:
            print(f"  • {p}")
        return 1
    print_success("All checks passed!" if not warnings else "Completed with warnings (see above)")
    return 0


def _build_handlers(args: argparse.Namespace, cfg: SyncConfig) -> dict[str, Any]:
    return {
        "sync": lambda: _cmd_sync(cfg, args),
        "hook": lambda: _cmd_hook(cfg, args),
        "validate": lambda: _cmd_validate(cfg, args),
        "doctor": lambda: _cmd_doctor(cfg, args),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = prepare_config(args)
    except ConfigError as exc:
        print_error(str(exc))
        return 1
    handler = _build_handlers(args, cfg).get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 2
    return execute_command(handler, args.cmd)


__all__ = ["main"]

if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
