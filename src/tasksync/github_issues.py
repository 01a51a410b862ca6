"""GitHub Issues abstraction used by the reconciliation engine.

Two implementations share one surface:

 - ``IssuesClient`` talks to the REST API through ``GitHubRestClient``.
 - ``MockIssuesClient`` keeps issues in memory; it backs ``TASKSYNC_MOCK=1``
   runs and the test-suite, and counts every mutation it receives.

Every operation returns a ``ClientResult`` so callers branch on the error
kind instead of catching exceptions.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from .config import SyncConfig
from .errors import ClientResult, ErrorKind
from .github_rest import GitHubRestClient
from .logging import get_logger
from .models import Issue, IssueState
from .retry import RetryConfig


@dataclass(frozen=True)
class ConnectionStatus:
    success: bool
    message: str
    kind: ErrorKind | None = None


class IssueTracker(Protocol):
    def find_issue_by_label(self, label: str) -> ClientResult[Issue]: ...

    def create_issue(
        self, title: str, body: str, labels: Iterable[str]
    ) -> ClientResult[Issue]: ...

    def update_issue(self, number: int, title: str, body: str) -> ClientResult[None]: ...

    def update_issue_labels(self, number: int, labels: Iterable[str]) -> ClientResult[None]: ...

    def close_issue(self, number: int) -> ClientResult[None]: ...

    def reopen_issue(self, number: int) -> ClientResult[None]: ...

    def test_connection(self) -> ConnectionStatus: ...


def _normalize_issue(raw: dict[str, Any]) -> Issue:
    labels: set[str] = set()
    for item in raw.get("labels") or []:
        if isinstance(item, dict):
            name = item.get("name")
            if isinstance(name, str):
                labels.add(name)
        elif isinstance(item, str):
            labels.add(item)
    return Issue(
        number=int(raw.get("number", 0)),
        title=str(raw.get("title") or ""),
        body=str(raw.get("body") or ""),
        state=IssueState.parse(raw.get("state")),
        labels=frozenset(labels),
        url=raw.get("html_url") or raw.get("url"),
    )


class IssuesClient:
    """REST-backed issue tracker.

    Remote failures never raise; they come back as ``ClientResult`` errors
    after the retry loop in ``GitHubRestClient`` has given up.
    """

    def __init__(self, rest: GitHubRestClient):
        self._rest = rest

    @classmethod
    def from_config(cls, config: SyncConfig, *, session: Any | None = None) -> IssuesClient:
        rest = GitHubRestClient(
            token=config.token or "",
            repo=config.repository or "",
            base_url=config.api_url,
            timeout=config.request_timeout_seconds,
            rate_limit_buffer=config.rate_limit_buffer,
            retry=RetryConfig(
                max_retries=config.max_retries,
                base_delay=config.retry_delay_seconds,
                max_total_backoff=config.max_backoff_seconds,
            ),
            session=session,
        )
        return cls(rest)

    @property
    def rest(self) -> GitHubRestClient:
        return self._rest

    def find_issue_by_label(self, label: str) -> ClientResult[Issue]:
        result = self._rest.list_issues_by_label(label)
        if not result.ok:
            return ClientResult(error=result.error, attempts=result.attempts)
        matches = [_normalize_issue(raw) for raw in result.value or []]
        # The API may match on label substrings in edge cases; insist on exact
        matches = [issue for issue in matches if label in issue.labels]
        if not matches:
            return ClientResult(value=None, attempts=result.attempts)
        matches.sort(key=lambda issue: issue.number)
        if len(matches) > 1:
            get_logger().warning(
                "duplicate_remote_issues",
                label=label,
                issue_numbers=[issue.number for issue in matches],
            )
        return ClientResult(value=matches[0], attempts=result.attempts)

    def create_issue(self, title: str, body: str, labels: Iterable[str]) -> ClientResult[Issue]:
        result = self._rest.create_issue(title=title, body=body, labels=list(labels))
        if not result.ok:
            return ClientResult(error=result.error, attempts=result.attempts)
        if not isinstance(result.value, dict):
            return ClientResult.failure(ErrorKind.UNKNOWN, "Issue create returned no payload")
        return ClientResult(value=_normalize_issue(result.value), attempts=result.attempts)

    def update_issue(self, number: int, title: str, body: str) -> ClientResult[None]:
        return self._drop_value(self._rest.update_issue(number=number, title=title, body=body))

    def update_issue_labels(self, number: int, labels: Iterable[str]) -> ClientResult[None]:
        return self._drop_value(self._rest.replace_labels(number=number, labels=labels))

    def close_issue(self, number: int) -> ClientResult[None]:
        return self._drop_value(self._rest.update_issue(number=number, state="closed"))

    def reopen_issue(self, number: int) -> ClientResult[None]:
        return self._drop_value(self._rest.update_issue(number=number, state="open"))

    def test_connection(self) -> ConnectionStatus:
        user = self._rest.get_authenticated_user()
        if user.error is not None:
            return ConnectionStatus(False, user.error.message, user.error.kind)
        repo = self._rest.get_repository()
        if repo.error is not None:
            return ConnectionStatus(False, repo.error.message, repo.error.kind)
        login = user.value.get("login", "unknown") if isinstance(user.value, dict) else "unknown"
        return ConnectionStatus(True, f"Connected as {login} to {self._rest.repo}")

    @staticmethod
    def _drop_value(result: ClientResult[Any]) -> ClientResult[None]:
        return ClientResult(error=result.error, attempts=result.attempts)


@dataclass
class MockIssuesClient:
    """In-memory tracker with the same surface as ``IssuesClient``.

    ``mutations`` records ``(operation, issue_number)`` pairs in call order;
    ``failures`` maps an operation name to a list of errors returned (and
    consumed) before the operation starts succeeding again.
    """

    repository: str = "mock/repo"
    issues: dict[int, Issue] = field(default_factory=dict)
    mutations: list[tuple[str, int]] = field(default_factory=list)
    failures: dict[str, list[ClientResult[Any]]] = field(default_factory=dict)
    connection: ConnectionStatus = field(
        default_factory=lambda: ConnectionStatus(True, "Connected to in-memory tracker")
    )
    next_number: int = 1001

    @property
    def mutation_count(self) -> int:
        return len(self.mutations)

    def fail_next(self, operation: str, kind: ErrorKind, message: str = "injected failure") -> None:
        self.failures.setdefault(operation, []).append(ClientResult.failure(kind, message))

    def _injected(self, operation: str) -> ClientResult[Any] | None:
        queue = self.failures.get(operation)
        if queue:
            return queue.pop(0)
        return None

    def _missing(self, number: int) -> ClientResult[None]:
        return ClientResult.failure(ErrorKind.NOT_FOUND, f"Issue #{number} not found")

    def find_issue_by_label(self, label: str) -> ClientResult[Issue]:
        injected = self._injected("find_issue_by_label")
        if injected is not None:
            return injected
        for number in sorted(self.issues):
            if label in self.issues[number].labels:
                return ClientResult.success(self.issues[number])
        return ClientResult.success(None)

    def create_issue(self, title: str, body: str, labels: Iterable[str]) -> ClientResult[Issue]:
        injected = self._injected("create_issue")
        if injected is not None:
            return injected
        number = self.next_number
        self.next_number += 1
        issue = Issue(
            number=number,
            title=title,
            body=body,
            state=IssueState.OPEN,
            labels=frozenset(labels),
            url=f"https://github.com/{self.repository}/issues/{number}",
        )
        self.issues[number] = issue
        self.mutations.append(("create", number))
        return ClientResult.success(issue)

    def _mutate(self, operation: str, number: int, **changes: Any) -> ClientResult[None]:
        injected = self._injected(operation)
        if injected is not None:
            return injected
        current = self.issues.get(number)
        if current is None:
            return self._missing(number)
        values = {
            "number": current.number,
            "title": current.title,
            "body": current.body,
            "state": current.state,
            "labels": current.labels,
            "url": current.url,
        }
        values.update(changes)
        self.issues[number] = Issue(**values)
        self.mutations.append((operation, number))
        return ClientResult.success(None)

    def update_issue(self, number: int, title: str, body: str) -> ClientResult[None]:
        return self._mutate("update", number, title=title, body=body)

    def update_issue_labels(self, number: int, labels: Iterable[str]) -> ClientResult[None]:
        return self._mutate("update_labels", number, labels=frozenset(labels))

    def close_issue(self, number: int) -> ClientResult[None]:
        return self._mutate("close", number, state=IssueState.CLOSED)

    def reopen_issue(self, number: int) -> ClientResult[None]:
        return self._mutate("reopen", number, state=IssueState.OPEN)

    def test_connection(self) -> ConnectionStatus:
        return self.connection


def build_client(config: SyncConfig) -> IssueTracker:
    if config.mock:
        get_logger().info("mock_tracker_enabled", repository=config.repository)
        return MockIssuesClient(repository=config.repository or "mock/repo")
    return IssuesClient.from_config(config)


__all__ = [
    "ConnectionStatus",
    "IssueTracker",
    "IssuesClient",
    "MockIssuesClient",
    "build_client",
]
