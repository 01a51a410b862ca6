"""Per-task reconciliation between a parsed Task and its remote issue.

``plan_task`` is the pure decision: given the task and the issue currently
carrying its identity label (if any) it returns the ordered actions needed to
bring the issue in line. ``reconcile_task`` looks the issue up, plans, and
applies the plan through an ``IssueTracker``.

Decision table::

    no issue                      -> create (+ close when completed)
    completed,     issue open     -> drifted updates, close
    completed,     issue closed   -> drifted updates
    not completed, issue closed   -> drifted updates, reopen
    not completed, issue open     -> drifted updates

"Drifted updates" are ``update`` (title/body, ignoring the Last Updated stamp)
and ``update_labels`` (set comparison), each issued only when needed, so a
second pass over unchanged input performs no mutations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .config import SyncConfig
from .diffing import compute_diff, labels_changed, needs_content_update
from .errors import AuthError, ClientError, ErrorKind, redact
from .github_issues import IssueTracker
from .labels import derive_labels, identity_label
from .logging import StructuredLogger, get_logger
from .models import Issue, Task
from .render import render_body, render_title

MAX_TITLE_LENGTH = 256
MAX_LABEL_LENGTH = 50
MAX_BODY_LENGTH = 65536

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_UPDATE_LABELS = "update_labels"
ACTION_CLOSE = "close"
ACTION_REOPEN = "reopen"
ACTIONS = (ACTION_CREATE, ACTION_UPDATE, ACTION_UPDATE_LABELS, ACTION_CLOSE, ACTION_REOPEN)


@dataclass(frozen=True)
class TaskPlan:
    task_id: str
    label: str
    issue_number: int | None
    actions: tuple[str, ...]
    title: str
    body: str
    labels: frozenset[str]
    diff: dict[str, Any] = field(default_factory=dict)

    @property
    def unchanged(self) -> bool:
        return not self.actions


@dataclass(frozen=True)
class TaskError:
    task_id: str
    kind: ErrorKind
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"task_id": self.task_id, "kind": self.kind.value, "message": self.message}


@dataclass
class TaskOutcome:
    task_id: str
    plan: TaskPlan | None = None
    applied: list[str] = field(default_factory=list)
    issue_number: int | None = None
    error: TaskError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def validate_rendered(title: str, body: str, labels: frozenset[str]) -> str | None:
    """Return a description of the first tracker limit the content breaks."""
    if len(title) > MAX_TITLE_LENGTH:
        return f"Title is {len(title)} characters (max {MAX_TITLE_LENGTH})"
    for label in sorted(labels):
        if len(label) > MAX_LABEL_LENGTH:
            return f"Label {label!r} is {len(label)} characters (max {MAX_LABEL_LENGTH})"
    if len(body) > MAX_BODY_LENGTH:
        return f"Body is {len(body)} characters (max {MAX_BODY_LENGTH})"
    return None


def validate_task(task: Task, *, prefix: str, now: datetime | None = None) -> TaskError | None:
    """Check the rendered issue content for ``task`` against tracker limits.

    Shared by live reconciliation and remote dry-run planning; a task that
    fails here is skipped before any tracker call.
    """
    problem = validate_rendered(
        render_title(task), render_body(task, now=now), derive_labels(task, prefix)
    )
    if problem is None:
        return None
    return TaskError(task.id, ErrorKind.VALIDATION, problem)


def plan_task(
    task: Task,
    issue: Issue | None,
    *,
    prefix: str,
    now: datetime | None = None,
) -> TaskPlan:
    title = render_title(task)
    body = render_body(task, now=now)
    labels = derive_labels(task, prefix)
    label = identity_label(task.id, prefix)
    if issue is None:
        actions = [ACTION_CREATE]
        if task.is_completed:
            actions.append(ACTION_CLOSE)
        return TaskPlan(task.id, label, None, tuple(actions), title, body, labels)

    actions = []
    if needs_content_update(title, body, issue):
        actions.append(ACTION_UPDATE)
    if labels_changed(labels, issue):
        actions.append(ACTION_UPDATE_LABELS)
    if task.is_completed and not issue.is_closed:
        actions.append(ACTION_CLOSE)
    elif not task.is_completed and issue.is_closed:
        actions.append(ACTION_REOPEN)
    diff = compute_diff(title, body, labels, issue) if actions else {}
    return TaskPlan(task.id, label, issue.number, tuple(actions), title, body, labels, diff)


def _fail(outcome: TaskOutcome, error: ClientError, logger: StructuredLogger) -> TaskOutcome:
    if error.kind is ErrorKind.AUTH:
        raise AuthError(error.message)
    outcome.error = TaskError(outcome.task_id, error.kind, redact(error.message))
    logger.log_error(
        "task_sync_failed",
        error=error.message,
        task_id=outcome.task_id,
        kind=error.kind.value,
        issue_number=outcome.issue_number,
    )
    return outcome


def reconcile_task(
    task: Task,
    client: IssueTracker,
    *,
    config: SyncConfig,
    logger: StructuredLogger | None = None,
    now: datetime | None = None,
) -> TaskOutcome:
    """Bring the remote issue for ``task`` in line with it.

    Per-task failures are recorded on the returned outcome. Authentication
    failures raise ``AuthError`` because no further task can succeed.
    """
    log = logger or get_logger()
    outcome = TaskOutcome(task_id=task.id)
    invalid = validate_task(task, prefix=config.label_prefix, now=now)
    if invalid is not None:
        outcome.error = invalid
        log.warning("task_validation_skipped", task_id=task.id, problem=invalid.message)
        return outcome

    lookup = client.find_issue_by_label(identity_label(task.id, config.label_prefix))
    if lookup.error is not None:
        return _fail(outcome, lookup.error, log)
    plan = plan_task(task, lookup.value, prefix=config.label_prefix, now=now)
    outcome.plan = plan
    outcome.issue_number = plan.issue_number
    if plan.unchanged:
        log.log_task_action("unchanged", task.id, plan.issue_number)
        return outcome

    for action in plan.actions:
        if action == ACTION_CREATE:
            created = client.create_issue(plan.title, plan.body, plan.labels)
            if created.error is not None:
                return _fail(outcome, created.error, log)
            if created.value is not None:
                outcome.issue_number = created.value.number
        else:
            number = outcome.issue_number
            if number is None:
                return _fail(
                    outcome,
                    ClientError(ErrorKind.UNKNOWN, f"No issue number available for {action}"),
                    log,
                )
            if action == ACTION_UPDATE:
                result = client.update_issue(number, plan.title, plan.body)
            elif action == ACTION_UPDATE_LABELS:
                result = client.update_issue_labels(number, plan.labels)
            elif action == ACTION_CLOSE:
                result = client.close_issue(number)
            else:
                result = client.reopen_issue(number)
            if result.error is not None:
                return _fail(outcome, result.error, log)
        outcome.applied.append(action)
        log.log_task_action(action, task.id, outcome.issue_number)
    return outcome


__all__ = [
    "ACTIONS",
    "MAX_BODY_LENGTH",
    "MAX_LABEL_LENGTH",
    "MAX_TITLE_LENGTH",
    "TaskError",
    "TaskOutcome",
    "TaskPlan",
    "plan_task",
    "reconcile_task",
    "validate_rendered",
    "validate_task",
]
