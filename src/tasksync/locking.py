"""Run serialization and cooperative cancellation.

``RepositoryLock`` holds an advisory ``fcntl.flock`` on
``<lock_dir>/<owner>__<repo>.lock`` for the lifetime of a live sync. The lock
belongs to the open file, so a second acquisition fails even inside the same
process. The holder's PID is written into the file for diagnostics.

``CancelToken`` is checked by the orchestrator between tasks. Active runs
register their token per repository so a newer trigger can ask them to stop.
"""

from __future__ import annotations

import fcntl
import os
import threading
import time
from pathlib import Path
from types import TracebackType
from typing import IO

from .errors import RunInProgressError
from .logging import get_logger


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


_ACTIVE_RUNS: dict[str, CancelToken] = {}
_ACTIVE_GUARD = threading.Lock()


def register_active_run(repository: str, token: CancelToken) -> None:
    with _ACTIVE_GUARD:
        _ACTIVE_RUNS[repository] = token


def unregister_active_run(repository: str, token: CancelToken) -> None:
    with _ACTIVE_GUARD:
        if _ACTIVE_RUNS.get(repository) is token:
            del _ACTIVE_RUNS[repository]


def request_cancel(repository: str, reason: str = "superseded by a newer trigger") -> bool:
    """Ask the in-process run for ``repository`` to stop; True if one was active."""
    with _ACTIVE_GUARD:
        token = _ACTIVE_RUNS.get(repository)
    if token is None:
        return False
    token.cancel(reason)
    get_logger().info("active_run_cancel_requested", repository=repository, reason=reason)
    return True


def lock_path(lock_dir: Path, repository: str) -> Path:
    return Path(lock_dir) / f"{repository.replace('/', '__')}.lock"


class RepositoryLock:
    def __init__(
        self,
        lock_dir: Path,
        repository: str,
        *,
        timeout: float = 0.0,
        poll_interval: float = 0.1,
    ) -> None:
        self.repository = repository
        self.path = lock_path(lock_dir, repository)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._handle: IO[str] | None = None

    @property
    def locked(self) -> bool:
        return self._handle is not None

    def acquire(self, timeout: float | None = None) -> None:
        """Take the lock, polling up to ``timeout`` seconds.

        Raises ``RunInProgressError`` when another holder keeps it longer.
        """
        if self._handle is not None:
            return
        wait = self.timeout if timeout is None else timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+", encoding="utf-8")  # noqa: SIM115
        deadline = time.monotonic() + max(0.0, wait)
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError as exc:
                if time.monotonic() >= deadline:
                    handle.close()
                    raise RunInProgressError(self.repository) from exc
                time.sleep(self.poll_interval)
        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        get_logger().debug("run_lock_acquired", repository=self.repository, lock_file=str(self.path))

    def release(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
        get_logger().debug("run_lock_released", repository=self.repository)

    def __enter__(self) -> RepositoryLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


__all__ = [
    "CancelToken",
    "RepositoryLock",
    "lock_path",
    "register_active_run",
    "request_cancel",
    "unregister_active_run",
]
