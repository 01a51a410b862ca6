from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import ClientResult, ErrorKind
from .logging import get_logger
from .retry import RetryConfig, run_with_retries

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "tasksync-rest/0.3.0"
HTTP_ERROR_STATUS = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_UNPROCESSABLE = 422
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


@dataclass
class RateLimitWindow:
    remaining: int | None = None
    reset_epoch: float | None = None

    def update(self, headers: Any) -> None:
        remaining = headers.get("X-RateLimit-Remaining") if headers else None
        reset = headers.get("X-RateLimit-Reset") if headers else None
        try:
            if remaining is not None:
                self.remaining = int(remaining)
            if reset is not None:
                self.reset_epoch = float(reset)
        except (TypeError, ValueError):
            return

    def seconds_until_reset(self, now: float | None = None) -> float:
        if self.reset_epoch is None:
            return 0.0
        return max(0.0, self.reset_epoch - (now if now is not None else time.time()) + 1.0)


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or ""
    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, str):
            return message
    return response.text or ""


def _classify_response(response: requests.Response, window: RateLimitWindow) -> ErrorKind:
    status = response.status_code
    message = _error_message(response).lower()
    if status == HTTP_TOO_MANY_REQUESTS:
        return ErrorKind.RATE_LIMIT
    if status == HTTP_FORBIDDEN and ("rate limit" in message or window.remaining == 0):
        return ErrorKind.RATE_LIMIT
    if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        return ErrorKind.AUTH
    if status == HTTP_NOT_FOUND:
        return ErrorKind.NOT_FOUND
    if status == HTTP_UNPROCESSABLE:
        return ErrorKind.VALIDATION
    if status >= HTTP_SERVER_ERROR:
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


_KIND_HINTS = {
    ErrorKind.AUTH: "GitHub authentication failed or access forbidden; check the token and repository permissions",
    ErrorKind.RATE_LIMIT: "GitHub rate limit exceeded",
    ErrorKind.NOT_FOUND: "GitHub repository or resource not found",
    ErrorKind.VALIDATION: "GitHub API validation error",
}


@dataclass
class GitHubRestClient:
    """Lightweight REST client for GitHub issue operations.

    Every call goes through ``_request`` which applies the explicit timeout,
    defers requests while the rate-limit window is exhausted, retries transient
    failures within one backoff budget and returns a ``ClientResult`` instead
    of raising.
    """

    token: str
    repo: str
    base_url: str = DEFAULT_API_URL
    timeout: float = 10.0
    rate_limit_buffer: int = 100
    retry: RetryConfig = field(default_factory=RetryConfig)
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)
    _window: RateLimitWindow = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._window = RateLimitWindow()

    @property
    def rate_limit(self) -> RateLimitWindow:
        return self._window

    # ---- transport ----------------------------------------------------
    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _respect_rate_limit(self) -> ClientResult[None]:
        """Defer a request while the rate-limit window is nearly exhausted.

        The wait is returned as a ``RATE_LIMIT`` failure carrying
        ``retry_after`` so ``run_with_retries`` sleeps it out of the same
        backoff budget as every other retry, or gives up when it does not fit.
        """
        remaining = self._window.remaining
        if remaining is None or remaining > self.rate_limit_buffer:
            return ClientResult.success(None)
        wait = self._window.seconds_until_reset()
        if wait <= 0:
            return ClientResult.success(None)
        get_logger().warning(
            "rate_limit_wait", remaining=remaining, wait_seconds=round(wait, 2)
        )
        # the next attempt goes out and refreshes the window from its headers
        self._window.remaining = None
        return ClientResult.failure(
            ErrorKind.RATE_LIMIT,
            f"Rate limit window nearly exhausted ({remaining} left); resets in {wait:.0f}s",
            retry_after=wait,
        )

    def _send(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        json_body: Any | None,
    ) -> ClientResult[Any]:
        gate = self._respect_rate_limit()
        if not gate.ok:
            return ClientResult(error=gate.error)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._session.headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            return ClientResult.failure(ErrorKind.NETWORK, f"{method} {url} timed out: {exc}")
        except requests.RequestException as exc:
            return ClientResult.failure(ErrorKind.NETWORK, f"{method} {url} failed: {exc}")
        self._window.update(getattr(response, "headers", None))
        if response.status_code >= HTTP_ERROR_STATUS:
            kind = _classify_response(response, self._window)
            retry_after: float | None = None
            if kind is ErrorKind.RATE_LIMIT:
                header = (getattr(response, "headers", None) or {}).get("Retry-After")
                retry_after = float(header) if header and str(header).isdigit() else None
                if retry_after is None and self._window.reset_epoch is not None:
                    retry_after = self._window.seconds_until_reset()
            hint = _KIND_HINTS.get(kind, "GitHub API error")
            return ClientResult.failure(
                kind,
                f"{hint} ({response.status_code}): {_error_message(response)}. Operation: {method} {url}",
                status=response.status_code,
                retry_after=retry_after,
            )
        if not response.text:
            return ClientResult.success(None)
        try:
            return ClientResult.success(response.json())
        except ValueError:
            return ClientResult.success(response.text)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> ClientResult[Any]:
        url = self._url(path)
        return run_with_retries(
            lambda: self._send(method, url, params, json_body),
            cfg=self.retry,
            operation=f"{method} {path}",
        )

    # ---- issue endpoints ----------------------------------------------
    def list_issues_by_label(self, label: str) -> ClientResult[list[dict[str, Any]]]:
        result = self._request(
            "GET",
            f"/repos/{self.repo}/issues",
            params={"labels": label, "state": "all", "per_page": 100},
        )
        if not result.ok:
            return ClientResult(error=result.error, attempts=result.attempts)
        entries = result.value if isinstance(result.value, list) else []
        issues = [e for e in entries if isinstance(e, dict) and "pull_request" not in e]
        return ClientResult(value=issues, attempts=result.attempts)

    def create_issue(
        self, *, title: str, body: str, labels: Iterable[str] | None = None
    ) -> ClientResult[Any]:
        payload: dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = sorted(labels)
        return self._request("POST", f"/repos/{self.repo}/issues", json_body=payload)

    def update_issue(
        self,
        *,
        number: int,
        title: str | None = None,
        body: str | None = None,
        state: str | None = None,
    ) -> ClientResult[Any]:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if state is not None:
            payload["state"] = state
        if not payload:
            return ClientResult.success(None)
        return self._request("PATCH", f"/repos/{self.repo}/issues/{number}", json_body=payload)

    def replace_labels(self, *, number: int, labels: Iterable[str]) -> ClientResult[Any]:
        return self._request(
            "PUT",
            f"/repos/{self.repo}/issues/{number}/labels",
            json_body={"labels": sorted(labels)},
        )

    def get_authenticated_user(self) -> ClientResult[Any]:
        return self._request("GET", "/user")

    def get_repository(self) -> ClientResult[Any]:
        return self._request("GET", f"/repos/{self.repo}")


__all__ = ["DEFAULT_API_URL", "GitHubRestClient", "RateLimitWindow"]
