"""File-change hook: dry run, confirm, then sync.

A trigger for a repository that already has an in-process run asks that run
to stop between tasks, then waits (up to ``lock_timeout_seconds``) for the
repository lock before syncing. A trigger that cannot get the lock in time is
reported as ``busy``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .config import SyncConfig
from .errors import RunInProgressError
from .locking import request_cancel
from .logging import get_logger
from .orchestrator import DryRunReport, RunReport, SyncOrchestrator
from .ux import render_dry_run

CHANGE_TYPES = ("created", "modified", "deleted")

STATUS_DISABLED = "disabled"
STATUS_IGNORED = "ignored"
STATUS_DECLINED = "declined"
STATUS_SYNCED = "synced"
STATUS_FAILED = "failed"
STATUS_BUSY = "busy"
STATUS_CANCELLED = "cancelled"


@dataclass(frozen=True)
class HookEvent:
    file_path: str
    change_type: str = "modified"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class HookResult:
    status: str
    message: str = ""
    dry_run: DryRunReport | None = None
    report: RunReport | None = None

    @property
    def ok(self) -> bool:
        return self.status not in (STATUS_FAILED, STATUS_BUSY)


def prompt_confirmation(report: DryRunReport) -> bool:
    render_dry_run(report)
    try:
        answer = input("\nProceed with GitHub sync? (y/N): ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class SyncHook:
    def __init__(
        self,
        config: SyncConfig,
        orchestrator: SyncOrchestrator | None = None,
        confirm: Callable[[DryRunReport], bool] | None = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator or SyncOrchestrator(config)
        self.confirm = confirm or prompt_confirmation
        self.logger = get_logger()

    def handle(self, event: HookEvent, *, interactive: bool = True) -> HookResult:
        self.logger.log_operation(
            "hook_triggered",
            file_path=event.file_path,
            change_type=event.change_type,
            interactive=interactive,
        )
        if not self.config.enabled:
            return HookResult(STATUS_DISABLED, "Sync is disabled in configuration")
        if event.change_type == "deleted":
            return HookResult(STATUS_IGNORED, f"{event.file_path} was deleted; nothing to sync")

        path = Path(event.file_path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            self.logger.log_error("hook_read_failed", error=str(exc), file_path=event.file_path)
            return HookResult(STATUS_FAILED, f"Cannot read {event.file_path}: {exc}")

        preview = self.orchestrator.dry_run(text, source_path=str(path))
        if not preview.succeeded:
            message = preview.failure["message"] if preview.failure else "dry run failed"
            return HookResult(STATUS_FAILED, message, dry_run=preview)

        if interactive and not self.confirm(preview):
            self.logger.info("hook_sync_declined", file_path=event.file_path)
            return HookResult(STATUS_DECLINED, "Sync cancelled by user", dry_run=preview)

        if self.config.repository:
            request_cancel(self.config.repository)
        report = self.orchestrator.sync(
            text,
            source_path=str(path),
            lock_wait=self.config.lock_timeout_seconds,
        )
        if report.failure and report.failure.get("type") == RunInProgressError.__name__:
            return HookResult(STATUS_BUSY, report.failure["message"], dry_run=preview, report=report)
        if report.cancelled:
            return HookResult(STATUS_CANCELLED, "Superseded by a newer trigger", dry_run=preview, report=report)
        if not report.succeeded:
            message = report.failure["message"] if report.failure else "sync failed"
            return HookResult(STATUS_FAILED, message, dry_run=preview, report=report)
        return HookResult(
            STATUS_SYNCED,
            f"Synced {report.total_tasks} tasks ({len(report.errors)} errors)",
            dry_run=preview,
            report=report,
        )


__all__ = ["CHANGE_TYPES", "HookEvent", "HookResult", "SyncHook", "prompt_confirmation"]
