from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest

from tasksync.config import SyncConfig
from tasksync.errors import ClientResult
from tasksync.github_issues import MockIssuesClient
from tasksync.hook import HookEvent, HookResult, SyncHook, prompt_confirmation
from tasksync.locking import CancelToken, RepositoryLock
from tasksync.models import Issue
from tasksync.orchestrator import DryRunReport, RunReport, RunState, SyncOrchestrator


@pytest.fixture
def task_file(tmp_path: Path, sample_text: str) -> Path:
    path = tmp_path / "specs" / "core" / "tasks.md"
    path.parent.mkdir(parents=True)
    path.write_text(sample_text, encoding="utf-8")
    return path


def _hook(config: SyncConfig, tracker: MockIssuesClient, answer: bool = True) -> SyncHook:
    seen: list[DryRunReport] = []

    def confirm(report: DryRunReport) -> bool:
        seen.append(report)
        return answer

    hook = SyncHook(config, SyncOrchestrator(config, client=tracker), confirm=confirm)
    hook.seen = seen  # type: ignore[attr-defined]
    return hook


def test_disabled_config_does_nothing(
    config: SyncConfig, tracker: MockIssuesClient, task_file: Path
) -> None:
    hook = _hook(config.with_overrides(enabled=False), tracker)

    result = hook.handle(HookEvent(str(task_file)))

    assert result.status == "disabled"
    assert tracker.mutation_count == 0


def test_deleted_file_is_ignored(config: SyncConfig, tracker: MockIssuesClient, tmp_path: Path) -> None:
    result = _hook(config, tracker).handle(HookEvent(str(tmp_path / "gone.md"), "deleted"))

    assert result.status == "ignored"
    assert result.ok


def test_unreadable_file_fails(config: SyncConfig, tracker: MockIssuesClient, tmp_path: Path) -> None:
    result = _hook(config, tracker).handle(HookEvent(str(tmp_path / "missing.md")))

    assert result.status == "failed"
    assert not result.ok


def test_declined_confirmation_skips_sync(
    config: SyncConfig, tracker: MockIssuesClient, task_file: Path
) -> None:
    hook = _hook(config, tracker, answer=False)

    result = hook.handle(HookEvent(str(task_file)))

    assert result.status == "declined"
    assert result.dry_run is not None
    assert result.dry_run.total_tasks == 4
    assert len(hook.seen) == 1  # type: ignore[attr-defined]
    assert tracker.mutation_count == 0


def test_confirmed_trigger_syncs(config: SyncConfig, tracker: MockIssuesClient, task_file: Path) -> None:
    result = _hook(config, tracker).handle(HookEvent(str(task_file), "created"))

    assert result.status == "synced"
    assert result.report is not None
    assert result.report.created == 4
    assert all("spec:core" in issue.labels for issue in tracker.issues.values())


def test_non_interactive_skips_prompt(
    config: SyncConfig, tracker: MockIssuesClient, task_file: Path
) -> None:
    hook = _hook(config, tracker, answer=False)

    result = hook.handle(HookEvent(str(task_file)), interactive=False)

    assert result.status == "synced"
    assert hook.seen == []  # type: ignore[attr-defined]


def test_trigger_while_locked_reports_busy(
    config: SyncConfig, tracker: MockIssuesClient, task_file: Path
) -> None:
    cfg = config.with_overrides(lock_timeout_seconds=0.2)

    with RepositoryLock(cfg.lock_dir, "acme/widgets"):
        result = _hook(cfg, tracker).handle(HookEvent(str(task_file)), interactive=False)

    assert result.status == "busy"
    assert not result.ok
    assert tracker.mutation_count == 0


def test_dry_run_failure_stops_hook(
    config: SyncConfig, tracker: MockIssuesClient, tmp_path: Path
) -> None:
    path = tmp_path / "tasks.md"
    path.write_text("- [ ] 1. One\n- [ ] 1. Again\n", encoding="utf-8")
    cfg = config.with_overrides(duplicate_policy="reject")

    result = _hook(cfg, tracker).handle(HookEvent(str(path)))

    assert result.status == "failed"
    assert "Duplicate" in result.message
    assert tracker.mutation_count == 0


@pytest.mark.parametrize(("answer", "expected"), [("y", True), ("YES", True), ("n", False), ("", False)])
def test_prompt_confirmation_answers(
    monkeypatch: pytest.MonkeyPatch, answer: str, expected: bool
) -> None:
    monkeypatch.setattr("builtins.input", lambda _prompt: answer)

    assert prompt_confirmation(DryRunReport(total_tasks=1)) is expected


def test_prompt_confirmation_eof_declines(monkeypatch: pytest.MonkeyPatch) -> None:
    def _eof(_prompt: str) -> str:
        raise EOFError

    monkeypatch.setattr("builtins.input", _eof)

    assert prompt_confirmation(DryRunReport()) is False


class _GatedTracker(MockIssuesClient):
    """Holds the first ``create_issue`` call until ``release`` is set."""

    def __init__(self, **kw: Any) -> None:
        super().__init__(**kw)
        self.entered = threading.Event()
        self.release = threading.Event()

    def create_issue(self, title: str, body: str, labels: Iterable[str]) -> ClientResult[Issue]:
        if not self.entered.is_set():
            self.entered.set()
            self.release.wait(timeout=5)
        return super().create_issue(title, body, labels)


def test_new_trigger_supersedes_running_sync(config: SyncConfig, task_file: Path) -> None:
    cfg = config.with_overrides(lock_timeout_seconds=5.0)
    tracker = _GatedTracker(repository="acme/widgets")
    first_token = CancelToken()
    first: list[RunReport] = []
    second: list[HookResult] = []
    text = task_file.read_text(encoding="utf-8")

    running = threading.Thread(
        target=lambda: first.append(
            SyncOrchestrator(cfg, client=tracker).sync(
                text, source_path=str(task_file), cancel=first_token
            )
        )
    )
    running.start()
    assert tracker.entered.wait(timeout=5)

    trigger = threading.Thread(
        target=lambda: second.append(
            SyncHook(cfg, SyncOrchestrator(cfg, client=tracker)).handle(
                HookEvent(str(task_file)), interactive=False
            )
        )
    )
    trigger.start()
    deadline = time.monotonic() + 5
    while not first_token.cancelled and time.monotonic() < deadline:
        time.sleep(0.01)
    tracker.release.set()
    running.join(timeout=10)
    trigger.join(timeout=10)

    assert first_token.cancelled
    (cancelled,) = first
    assert cancelled.cancelled
    assert cancelled.state is RunState.CANCELLED
    assert [o.applied for o in cancelled.outcomes] == [["create", "close"]]
    (result,) = second
    assert result.status == "synced"
    assert result.report is not None
    assert result.report.unchanged == 1
    assert result.report.created == 3
    assert len(tracker.issues) == 4
