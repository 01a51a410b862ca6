"""Sync orchestration: parse, plan, reconcile, report.

``SyncOrchestrator`` drives one run at a time through::

    IDLE -> PARSING -> DRY_RUN_REPORT -> DONE
    IDLE -> PARSING -> RECONCILING -> DONE | CANCELLED
    (any) -> FAILED on a run-level error

Run-level errors are configuration problems (including rejected duplicate
ids), authentication failures, and a busy repository lock. They end the run
before or between tasks; per-task errors are recorded and the run continues.
Reports always carry totals and every per-task error, and may be written to
``summary_json``.
"""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any

from .config import SyncConfig
from .errors import AuthError, ClientError, ErrorKind, TaskSyncError, classify_error, redact
from .github_issues import ConnectionStatus, IssueTracker, build_client
from .labels import derive_labels, identity_label, split_labels
from .locking import CancelToken, RepositoryLock, register_active_run, unregister_active_run
from .logging import StructuredLogger, get_logger
from .models import Task, TaskStatus
from .parser import extract_spec_name, parse_tasks, resolve_duplicates
from .reconcile import (
    ACTION_CLOSE,
    ACTION_CREATE,
    ACTION_REOPEN,
    ACTION_UPDATE,
    ACTION_UPDATE_LABELS,
    TaskError,
    TaskOutcome,
    plan_task,
    reconcile_task,
    validate_task,
)

SUMMARY_SCHEMA_VERSION = 1


class RunState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    DRY_RUN_REPORT = "dry_run_report"
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RunReport:
    total_tasks: int = 0
    created: int = 0
    updated: int = 0
    closed: int = 0
    reopened: int = 0
    unchanged: int = 0
    errors: list[TaskError] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    cancelled: bool = False
    state: RunState = RunState.IDLE
    failure: dict[str, str] | None = None
    action_counts: Counter[str] = field(default_factory=Counter)
    outcomes: list[TaskOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.DONE

    @property
    def succeeded_tasks(self) -> int:
        """Tasks processed without a per-task error; unprocessed tasks are not counted."""
        return sum(1 for outcome in self.outcomes if outcome.ok)

    def record(self, outcome: TaskOutcome) -> None:
        self.outcomes.append(outcome)
        applied = outcome.applied
        self.action_counts.update(applied)
        if ACTION_CREATE in applied:
            self.created += 1
        if ACTION_UPDATE in applied or ACTION_UPDATE_LABELS in applied:
            self.updated += 1
        if ACTION_CLOSE in applied:
            self.closed += 1
        if ACTION_REOPEN in applied:
            self.reopened += 1
        if outcome.error is not None:
            self.errors.append(outcome.error)
        elif outcome.plan is not None and outcome.plan.unchanged:
            self.unchanged += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "totals": {
                "total_tasks": self.total_tasks,
                "created": self.created,
                "updated": self.updated,
                "closed": self.closed,
                "reopened": self.reopened,
                "unchanged": self.unchanged,
                "succeeded": self.succeeded_tasks,
                "errors": len(self.errors),
            },
            "errors": [e.to_dict() for e in self.errors],
            "duplicates": list(self.duplicates),
            "cancelled": self.cancelled,
            "state": self.state.value,
            "failure": self.failure,
            "changes": [
                {
                    "task_id": o.task_id,
                    "issue_number": o.issue_number,
                    "applied": list(o.applied),
                    "diff": o.plan.diff if o.plan is not None else {},
                }
                for o in self.outcomes
                if o.applied
            ],
        }


@dataclass
class DryRunReport:
    total_tasks: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_component: dict[str, int] = field(default_factory=dict)
    by_phase: dict[str, int] = field(default_factory=dict)
    samples: dict[str, list[str]] = field(default_factory=dict)
    duplicates: list[str] = field(default_factory=list)
    planned: dict[str, int] | None = None
    plans: list[dict[str, Any]] = field(default_factory=list)
    errors: list[TaskError] = field(default_factory=list)
    state: RunState = RunState.IDLE
    failure: dict[str, str] | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "by_status": dict(self.by_status),
            "by_component": dict(self.by_component),
            "by_phase": dict(self.by_phase),
            "samples": {k: list(v) for k, v in self.samples.items()},
            "duplicates": list(self.duplicates),
            "planned": dict(self.planned) if self.planned is not None else None,
            "plans": list(self.plans),
            "errors": [e.to_dict() for e in self.errors],
            "state": self.state.value,
            "failure": self.failure,
        }


def _connection_error(status: ConnectionStatus) -> TaskSyncError:
    message = f"Connection test failed: {status.message}"
    if status.kind is None or status.kind is ErrorKind.AUTH:
        return AuthError(message)
    return ClientError(status.kind, message).to_exception()


def _failure_payload(exc: BaseException) -> dict[str, str]:
    info = classify_error(exc)
    return {"category": info.category, "type": info.original_type, "message": info.message}


class SyncOrchestrator:
    """Entry point for dry-run analysis and live synchronization."""

    def __init__(
        self,
        config: SyncConfig,
        client: IssueTracker | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.config = config
        self._client = client
        self.logger = logger or get_logger()
        self.state = RunState.IDLE

    @property
    def client(self) -> IssueTracker:
        if self._client is None:
            self._client = build_client(self.config)
        return self._client

    # --- shared steps ---------------------------------------------------
    def _parse(self, text: str, source_path: str) -> tuple[list[Task], list[str]]:
        self.state = RunState.PARSING
        spec_name = self.config.spec_name or extract_spec_name(source_path)
        tasks = parse_tasks(text, spec_name=spec_name, source_path=source_path)
        return resolve_duplicates(tasks, self.config.duplicate_policy)

    def _fail(self, report: RunReport | DryRunReport, exc: TaskSyncError) -> None:
        self.state = RunState.FAILED
        report.state = RunState.FAILED
        report.failure = _failure_payload(exc)
        self.logger.log_error("sync_run_failed", error=str(exc), category=report.failure["category"])

    def _write_summary(self, payload: dict[str, Any], *, dry_run: bool) -> None:
        target = self.config.summary_json
        if not target:
            return
        enriched = {
            "schemaVersion": SUMMARY_SCHEMA_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "dry_run": dry_run,
            "repository": self.config.repository,
            **payload,
        }
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(enriched, indent=2) + "\n", encoding="utf-8")
        self.logger.debug("summary_written", summary_path=str(path))

    # --- dry run --------------------------------------------------------
    def dry_run(
        self, text: str, *, source_path: str = "tasks.md", plan_remote: bool = False
    ) -> DryRunReport:
        """Report what a sync would do without mutating anything.

        With ``plan_remote`` each task's issue is looked up and run through the
        same ``plan_task`` decision as a live sync.
        """
        report = DryRunReport()
        try:
            self.config.validate(live=plan_remote)
            tasks, duplicates = self._parse(text, source_path)
            report.total_tasks = len(tasks)
            report.duplicates = duplicates
            self._summarize(tasks, report)
            if plan_remote:
                self._plan_remote(tasks, report)
        except TaskSyncError as exc:
            self._fail(report, exc)
        else:
            self.state = RunState.DRY_RUN_REPORT
            self.logger.log_operation(
                "dry_run_report",
                total_tasks=report.total_tasks,
                duplicate_count=len(report.duplicates),
            )
            self.state = RunState.DONE
            report.state = RunState.DONE
        self._write_summary(report.to_dict(), dry_run=True)
        return report

    def _summarize(self, tasks: list[Task], report: DryRunReport) -> None:
        by_status: Counter[str] = Counter()
        by_component: Counter[str] = Counter()
        by_phase: Counter[str] = Counter()
        samples: dict[str, list[str]] = {s.value: [] for s in TaskStatus}
        limit = self.config.dry_run_sample_limit
        for task in tasks:
            by_status[task.status.value] += 1
            grouped = split_labels(derive_labels(task, self.config.label_prefix), self.config.label_prefix)
            by_component.update(grouped["component"])
            by_phase.update(grouped["phase"])
            bucket = samples[task.status.value]
            if len(bucket) < limit:
                bucket.append(f"{task.id}: {task.title}")
        report.by_status = dict(by_status)
        report.by_component = dict(sorted(by_component.items()))
        report.by_phase = dict(by_phase)
        report.samples = samples

    def _plan_remote(self, tasks: list[Task], report: DryRunReport) -> None:
        status = self.client.test_connection()
        if not status.success:
            raise _connection_error(status)
        planned: Counter[str] = Counter()
        unchanged = 0
        for task in tasks:
            invalid = validate_task(task, prefix=self.config.label_prefix)
            if invalid is not None:
                report.errors.append(invalid)
                self.logger.warning("task_validation_skipped", task_id=task.id, problem=invalid.message)
                continue
            lookup = self.client.find_issue_by_label(identity_label(task.id, self.config.label_prefix))
            if lookup.error is not None:
                if lookup.error.kind is ErrorKind.AUTH:
                    raise AuthError(lookup.error.message)
                report.errors.append(TaskError(task.id, lookup.error.kind, redact(lookup.error.message)))
                continue
            plan = plan_task(task, lookup.value, prefix=self.config.label_prefix)
            planned.update(plan.actions)
            if plan.unchanged:
                unchanged += 1
            report.plans.append(
                {"task_id": plan.task_id, "issue_number": plan.issue_number, "actions": list(plan.actions)}
            )
            self.logger.log_task_action(
                "planned", task.id, plan.issue_number, dry_run=True, actions=list(plan.actions)
            )
        report.planned = {**{a: planned[a] for a in sorted(planned)}, "unchanged": unchanged}

    # --- live sync ------------------------------------------------------
    def _prepare_live(
        self, text: str, source_path: str, report: RunReport, cancel: CancelToken, lock_wait: float = 0.0
    ) -> tuple[list[Task], RepositoryLock]:
        self.config.validate(live=True)
        tasks, duplicates = self._parse(text, source_path)
        report.total_tasks = len(tasks)
        report.duplicates = duplicates
        repository = self.config.repository or ""
        lock = RepositoryLock(self.config.lock_dir, repository)
        lock.acquire(timeout=lock_wait)
        register_active_run(repository, cancel)
        try:
            status = self.client.test_connection()
            if not status.success:
                raise _connection_error(status)
            self.logger.info("connection_ok", repository=repository, detail=status.message)
        except BaseException:
            unregister_active_run(repository, cancel)
            lock.release()
            raise
        self.state = RunState.RECONCILING
        return tasks, lock

    def _finish_live(self, report: RunReport, lock: RepositoryLock | None, cancel: CancelToken) -> None:
        if lock is not None:
            unregister_active_run(lock.repository, cancel)
            lock.release()
        self.logger.log_operation(
            "sync_complete",
            state=report.state.value,
            created_count=report.created,
            updated_count=report.updated,
            closed_count=report.closed,
            reopened_count=report.reopened,
            unchanged_count=report.unchanged,
            error_count=len(report.errors),
        )
        self._write_summary(report.to_dict(), dry_run=False)

    def _stop_requested(self, cancel: CancelToken, report: RunReport) -> bool:
        if not cancel.cancelled:
            return False
        report.cancelled = True
        self.logger.warning(
            "sync_cancelled",
            reason=cancel.reason,
            processed=len(report.outcomes),
            total_tasks=report.total_tasks,
        )
        return True

    def _settle(self, report: RunReport) -> None:
        self.state = RunState.CANCELLED if report.cancelled else RunState.DONE
        report.state = self.state

    def sync(
        self,
        text: str,
        *,
        source_path: str = "tasks.md",
        cancel: CancelToken | None = None,
        lock_wait: float = 0.0,
    ) -> RunReport:
        """Reconcile every task sequentially while holding the repository lock.

        ``lock_wait`` bounds how long to wait for a concurrent run on the same
        repository before failing with ``RunInProgressError``.
        """
        report = RunReport()
        token = cancel or CancelToken()
        lock: RepositoryLock | None = None
        try:
            tasks, lock = self._prepare_live(text, source_path, report, token, lock_wait)
            for task in tasks:
                if self._stop_requested(token, report):
                    break
                report.record(
                    reconcile_task(task, self.client, config=self.config, logger=self.logger)
                )
            self._settle(report)
        except TaskSyncError as exc:
            self._fail(report, exc)
        finally:
            self._finish_live(report, lock, token)
        return report

    async def sync_async(
        self,
        text: str,
        *,
        source_path: str = "tasks.md",
        cancel: CancelToken | None = None,
        lock_wait: float = 0.0,
    ) -> RunReport:
        """Async variant of ``sync``; blocking tracker calls run in the loop executor."""
        loop = asyncio.get_running_loop()
        report = RunReport()
        token = cancel or CancelToken()
        lock: RepositoryLock | None = None
        try:
            tasks, lock = await loop.run_in_executor(
                None, self._prepare_live, text, source_path, report, token, lock_wait
            )
            for task in tasks:
                if self._stop_requested(token, report):
                    break
                outcome = await loop.run_in_executor(
                    None,
                    partial(reconcile_task, task, self.client, config=self.config, logger=self.logger),
                )
                report.record(outcome)
            self._settle(report)
        except TaskSyncError as exc:
            self._fail(report, exc)
        finally:
            self._finish_live(report, lock, token)
        return report

    def sync_file(
        self,
        path: str | Path | None = None,
        *,
        dry_run: bool = False,
        plan_remote: bool = False,
        cancel: CancelToken | None = None,
    ) -> RunReport | DryRunReport:
        source = Path(path) if path is not None else self.config.source_file
        text = source.read_text(encoding="utf-8")
        if dry_run:
            return self.dry_run(text, source_path=str(source), plan_remote=plan_remote)
        return self.sync(text, source_path=str(source), cancel=cancel)


__all__ = ["DryRunReport", "RunReport", "RunState", "SyncOrchestrator"]
