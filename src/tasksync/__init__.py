"""tasksync - keep GitHub issues in line with markdown checkbox task lists.

High-level public API:

from tasksync import SyncOrchestrator, load_config

cfg = load_config('tasksync.config.yaml')
orchestrator = SyncOrchestrator(cfg)
preview = orchestrator.sync_file(cfg.source_file, dry_run=True)
report = orchestrator.sync_file(cfg.source_file)
print(report.to_dict()['totals'])

The CLI (``tasksync``) delegates to this library.
"""

from __future__ import annotations

from .config import SyncConfig, load_config
from .hook import HookEvent, HookResult, SyncHook
from .models import Issue, IssueState, Task, TaskStatus
from .orchestrator import DryRunReport, RunReport, RunState, SyncOrchestrator
from .parser import parse_task_file, parse_tasks

__version__ = "0.3.0"

__all__ = [
    "DryRunReport",
    "HookEvent",
    "HookResult",
    "Issue",
    "IssueState",
    "RunReport",
    "RunState",
    "SyncConfig",
    "SyncHook",
    "SyncOrchestrator",
    "Task",
    "TaskStatus",
    "load_config",
    "parse_task_file",
    "parse_tasks",
    "__version__",
]
