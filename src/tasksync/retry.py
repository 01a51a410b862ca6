"""Centralized retry / backoff helpers.

``run_with_retries`` wraps a thunk returning a ``ClientResult`` and repeats it
while the result carries a transient error kind (rate limit / network), using
exponential backoff with jitter. Explicit server hints (``Retry-After`` or a
rate-limit reset) take precedence over the computed delay. The total time
spent sleeping for one call is capped by ``RetryConfig.max_total_backoff``;
once the budget is spent the last failure is returned to the caller.

Environment overrides:
  TASKSYNC_RETRY_MAX_SLEEP (cap for a single sleep, seconds)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TypeVar

from .errors import ClientError, ClientResult
from .logging import get_logger

T = TypeVar("T")

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _extract_explicit_backoff(text: str) -> float | None:
    """Extract an explicit backoff (seconds) from error text.

    Supports patterns like:
      Retry-After: 12
      retry after 12
      wait 30 seconds
    Returns None if no valid positive value found.
    """
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


@dataclass
class RetryConfig:
    max_retries: int = 3
    base_delay: float = 1.0
    max_total_backoff: float = 60.0

    @property
    def attempts(self) -> int:
        return max(1, self.max_retries + 1)


def _compute_sleep(attempt: int, cfg: RetryConfig, error: ClientError) -> float:
    explicit = error.retry_after
    if explicit is None:
        explicit = _extract_explicit_backoff(error.message)
    backoff = cfg.base_delay * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("TASKSYNC_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def run_with_retries(
    fn: Callable[[], ClientResult[T]],
    *,
    cfg: RetryConfig | None = None,
    operation: str = "request",
) -> ClientResult[T]:
    cfg = cfg or RetryConfig()
    logger = get_logger()
    attempts = cfg.attempts
    spent = 0.0
    result: ClientResult[T] = ClientResult.success(None)
    for attempt in range(1, attempts + 1):
        result = fn()
        error = result.error
        if error is None or not error.kind.transient or attempt >= attempts:
            return replace(result, attempts=attempt)
        sleep_for = _compute_sleep(attempt, cfg, error)
        if spent + sleep_for > cfg.max_total_backoff:
            logger.warning(
                "retry_budget_exhausted",
                operation=operation,
                attempt=attempt,
                spent_seconds=round(spent, 2),
                kind=error.kind.value,
            )
            exhausted = replace(
                error, message=f"{error.message} (backoff budget of {cfg.max_total_backoff}s exhausted)"
            )
            return ClientResult(error=exhausted, attempts=attempt)
        logger.warning(
            "transient_error_retrying",
            operation=operation,
            attempt=attempt,
            max_attempts=attempts,
            delay_seconds=round(sleep_for, 2),
            kind=error.kind.value,
            error=error.message,
        )
        time.sleep(sleep_for)
        spent += sleep_for
    return result  # pragma: no cover - loop always returns


__all__ = ["RetryConfig", "run_with_retries"]
