from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def icon(self) -> str:
        return _STATUS_ICONS[self]


_STATUS_ICONS = {
    TaskStatus.COMPLETED: "✅",
    TaskStatus.IN_PROGRESS: "🔄",
    TaskStatus.NOT_STARTED: "📋",
}


class IssueState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value: object) -> IssueState:
        # GitHub CLI reports upper-case states, REST lower-case
        return cls.CLOSED if str(value or "").lower() == "closed" else cls.OPEN


@dataclass(frozen=True)
class SourceLocation:
    path: str
    line: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass(frozen=True)
class Task:
    """One unit of work parsed from a markdown task file.

    Tasks are rebuilt from the markdown text on every parse and never mutated
    during a sync run. The remote identity of a task is the label
    ``{prefix}{id}``.
    """

    id: str
    title: str
    status: TaskStatus
    spec_name: str
    source: SourceLocation
    requirements: tuple[str, ...] = ()
    description: str = ""
    phase: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    @property
    def major(self) -> int:
        """Leading numeric segment of the dotted id."""
        return int(self.id.split(".", 1)[0])


@dataclass(frozen=True)
class Issue:
    """Remote issue mirroring a Task."""

    number: int
    title: str
    body: str
    state: IssueState
    labels: frozenset[str] = field(default_factory=frozenset)
    url: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.state is IssueState.CLOSED


__all__ = ["TaskStatus", "IssueState", "SourceLocation", "Task", "Issue"]
