"""Error taxonomy & redaction helpers.

Two layers live here:

* Exception classes for run-level and parse-level failures. ``ConfigError``
  and ``AuthError`` terminate a sync run; everything else is recorded per task.
* Result values returned by the issue tracker client (``ClientError`` /
  ``ClientResult``) so the reconciliation engine can branch on the error kind
  without catching by exception type.

Public API:
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"gh[ousr]_[A-Za-z0-9]{20,}"),  # OAuth / server / refresh tokens
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]{8,}"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class TaskSyncError(RuntimeError):
    """Base class for all tasksync failures."""


class ParseError(TaskSyncError):
    def __init__(self, message: str, *, line: int | None = None):
        super().__init__(message)
        self.line = line


class ConfigError(TaskSyncError):
    pass


class DuplicateTaskError(ConfigError):
    def __init__(self, task_ids: list[str]):
        super().__init__(f"Duplicate task ids rejected: {', '.join(task_ids)}")
        self.task_ids = task_ids


class AuthError(TaskSyncError):
    pass


class RateLimitError(TaskSyncError):
    pass


class NetworkError(TaskSyncError):
    pass


class NotFoundError(TaskSyncError):
    pass


class ValidationError(TaskSyncError):
    pass


class RunInProgressError(TaskSyncError):
    def __init__(self, repository: str):
        super().__init__(f"A sync run for {repository} is already in progress")
        self.repository = repository


class ErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @property
    def transient(self) -> bool:
        return self in (ErrorKind.RATE_LIMIT, ErrorKind.NETWORK)


_KIND_EXCEPTIONS: dict[ErrorKind, type[TaskSyncError]] = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.RATE_LIMIT: RateLimitError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.UNKNOWN: TaskSyncError,
}


@dataclass(frozen=True)
class ClientError:
    kind: ErrorKind
    message: str
    status: int | None = None
    retry_after: float | None = None

    def to_exception(self) -> TaskSyncError:
        return _KIND_EXCEPTIONS[self.kind](self.message)


@dataclass(frozen=True)
class ClientResult(Generic[T]):
    """Outcome of a single tracker operation.

    Exactly one of ``value`` (on success; may legitimately be ``None``) or
    ``error`` is meaningful. ``attempts`` counts the calls made by the retry
    loop.
    """

    value: T | None = None
    error: ClientError | None = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> ClientResult[T]:
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        status: int | None = None,
        retry_after: float | None = None,
    ) -> ClientResult[T]:
        return cls(error=ClientError(kind, redact(message), status, retry_after))

    def unwrap(self) -> T | None:
        if self.error is not None:
            raise self.error.to_exception()
        return self.value


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Redact sensitive tokens in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Typed tasksync errors map directly; anything else falls back to keyword
    sniffing on the message (rate limit, network, parse).
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if isinstance(exc, AuthError):
        return ErrorInfo("auth", redact(msg), name)
    if isinstance(exc, ConfigError):
        return ErrorInfo("config", redact(msg), name)
    if isinstance(exc, RateLimitError) or "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if isinstance(exc, NetworkError) or any(
        k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")
    ):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if isinstance(exc, ParseError) or any(k in low for k in ("yaml", "scannererror", "parsererror")):
        return ErrorInfo("parse", redact(msg), name)
    if isinstance(exc, ValidationError):
        return ErrorInfo("validation", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "TaskSyncError",
    "ParseError",
    "ConfigError",
    "DuplicateTaskError",
    "AuthError",
    "RateLimitError",
    "NetworkError",
    "NotFoundError",
    "ValidationError",
    "RunInProgressError",
    "ErrorKind",
    "ClientError",
    "ClientResult",
    "ErrorInfo",
    "classify_error",
    "redact",
]
