"""GitHub REST client for issue create / update / close / lookup.

Every public operation goes through the same wrapper: a cooperative
rate-limit gate, then :func:`tasksync.retry.run_with_retries`, then error
classification into :class:`tasksync.errors.RemoteIssueError`. HTTP itself is
blocking ``requests``; calls are pushed to a worker thread so the sync loop
stays on asyncio and waits inline (callers are serialized by awaiting).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import requests

from .errors import RemoteIssueError, redact, to_remote_error
from .logging import get_logger
from .models import RateLimitSnapshot, RemoteIssue
from .retry import RetryConfig, SleepFn, run_with_retries

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "tasksync/0.1.0"
HTTP_ERROR_STATUS = 400
REQUEST_TIMEOUT = 10
RATE_LIMIT_REFRESH_SECONDS = 300
RESET_MARGIN_SECONDS = 1

T = TypeVar("T")


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub REST API returns an error status."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


@dataclass
class ConnectionCheck:
    success: bool
    message: str


def _api_message(response: Any) -> str:
    try:
        data = response.json()
    except Exception:  # noqa: BLE001 - non-JSON error bodies are common behind proxies
        return str(getattr(response, "text", "") or "")
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return str(getattr(response, "text", "") or "")


def _to_issue(entry: dict[str, Any]) -> RemoteIssue:
    labels: list[str] = []
    raw_labels = entry.get("labels")
    if isinstance(raw_labels, list):
        for lbl in raw_labels:
            if isinstance(lbl, dict):
                name = lbl.get("name")
                if isinstance(name, str):
                    labels.append(name)
            elif isinstance(lbl, str):
                labels.append(lbl)
    return RemoteIssue(
        number=int(entry.get("number") or 0),
        title=str(entry.get("title") or ""),
        body=str(entry.get("body") or ""),
        state=str(entry.get("state") or "open"),
        labels=labels,
        html_url=str(entry.get("html_url") or ""),
    )


@dataclass
class GitHubIssueClient:
    """Issue operations against one ``owner/repo`` with backpressure and retries."""

    token: str
    repo: str
    base_url: str = DEFAULT_API_URL
    max_retries: int = 3
    retry_delay: float = 1.0
    rate_limit_buffer: int = 100
    session: requests.Session | None = None
    sleep: SleepFn = asyncio.sleep
    clock: Callable[[], float] = time.time
    _session: requests.Session = field(init=False, repr=False)
    _rate_limit: RateLimitSnapshot | None = field(init=False, default=None, repr=False)
    _refresh_due: bool = field(init=False, default=False, repr=False)

    def __post_init__(self) -> None:
        owner, _, name = self.repo.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(
                f"Invalid repository format: {self.repo}. Expected format: \"owner/repo\""
            )
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._retry = RetryConfig(max_retries=self.max_retries, retry_delay=self.retry_delay)
        self._logger = get_logger()

    # ---- transport ----------------------------------------------------
    def _request_sync(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        response = self._session.request(
            method,
            url,
            params=params,
            json=json_body,
            headers=self._session.headers,
            timeout=REQUEST_TIMEOUT,
        )
        self._observe_rate_headers(getattr(response, "headers", None) or {})
        if response.status_code >= HTTP_ERROR_STATUS:
            message = _api_message(response)
            raise GitHubAPIError(
                f"GitHub API {method} {url} failed with {response.status_code}: {message}",
                status=response.status_code,
                response_text=response.text,
            )
        if response.text:
            return response.json()
        return None

    async def _request(self, method: str, path: str, **kw: Any) -> Any:
        return await asyncio.to_thread(self._request_sync, method, path, **kw)

    def _observe_rate_headers(self, headers: Any) -> None:
        remaining = headers.get("X-RateLimit-Remaining") if hasattr(headers, "get") else None
        if remaining is None:
            return
        try:
            if int(remaining) <= self.rate_limit_buffer:
                self._refresh_due = True
        except (TypeError, ValueError):
            return

    # ---- rate limiting ------------------------------------------------
    @property
    def rate_limit(self) -> RateLimitSnapshot | None:
        return self._rate_limit

    async def get_rate_limit(self) -> RateLimitSnapshot:
        now = self.clock()
        try:
            data = await self._request("GET", "/rate_limit")
            rate = data["rate"]
            snapshot = RateLimitSnapshot(
                limit=int(rate["limit"]),
                remaining=int(rate["remaining"]),
                reset=int(rate["reset"]),
                used=int(rate.get("used", 0)),
                checked_at=now,
            )
        except Exception as exc:  # noqa: BLE001 - fall back to a conservative estimate
            self._logger.warning("Failed to get rate limit info", error=redact(str(exc)))
            snapshot = RateLimitSnapshot(
                limit=5000,
                remaining=1000,
                reset=int(now) + 3600,
                used=4000,
                checked_at=now,
            )
        self._rate_limit = snapshot
        self._refresh_due = False
        return snapshot

    async def check_rate_limit(self) -> None:
        snapshot = self._rate_limit
        stale = snapshot is None or (self.clock() - snapshot.checked_at) > RATE_LIMIT_REFRESH_SECONDS
        if stale or self._refresh_due or snapshot is None:
            snapshot = await self.get_rate_limit()
        if snapshot.remaining > self.rate_limit_buffer:
            return
        wait = snapshot.reset - self.clock() + RESET_MARGIN_SECONDS
        if wait <= 0:
            return
        self._logger.warning(
            "Rate limit approaching, waiting for reset",
            remaining=snapshot.remaining,
            reset=snapshot.reset,
            wait_s=round(wait, 2),
        )
        await self.sleep(wait)
        await self.get_rate_limit()

    # ---- call wrapper -------------------------------------------------
    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        await self.check_rate_limit()
        try:
            return await run_with_retries(fn, cfg=self._retry, sleep=self.sleep)
        except Exception as exc:
            error = to_remote_error(exc, operation)
            self._logger.log_error(
                f"Failed to {operation}",
                error=str(error),
                kind=error.kind.value,
                status=error.status,
            )
            raise error from exc

    # ---- issue operations ----------------------------------------------
    async def create_issue(
        self, title: str, body: str, labels: Iterable[str] | None = None
    ) -> RemoteIssue:
        payload: dict[str, Any] = {"title": title, "body": body, "labels": list(labels or [])}
        data = await self._call(
            "create issue",
            lambda: self._request("POST", f"/repos/{self.repo}/issues", json_body=payload),
        )
        issue = _to_issue(data)
        self._logger.info("Created GitHub issue", issue_number=issue.number, url=issue.html_url)
        return issue

    async def update_issue(
        self,
        issue_number: int,
        title: str,
        body: str,
        *,
        state: str | None = None,
        labels: Iterable[str] | None = None,
    ) -> RemoteIssue:
        """PATCH title and body; ``labels`` replaces the issue's full label set."""
        payload: dict[str, Any] = {"title": title, "body": body}
        if state is not None:
            payload["state"] = state
        if labels is not None:
            payload["labels"] = list(labels)
        data = await self._call(
            "update issue",
            lambda: self._request(
                "PATCH", f"/repos/{self.repo}/issues/{issue_number}", json_body=payload
            ),
        )
        issue = _to_issue(data)
        self._logger.info("Updated GitHub issue", issue_number=issue.number, url=issue.html_url)
        return issue

    async def close_issue(self, issue_number: int) -> RemoteIssue:
        data = await self._call(
            "close issue",
            lambda: self._request(
                "PATCH",
                f"/repos/{self.repo}/issues/{issue_number}",
                json_body={"state": "closed"},
            ),
        )
        issue = _to_issue(data)
        self._logger.info("Closed GitHub issue", issue_number=issue.number, url=issue.html_url)
        return issue

    async def find_issue_by_label(self, label: str) -> RemoteIssue | None:
        params = {"labels": label, "state": "all", "per_page": 1}
        data = await self._call(
            "find issue by label",
            lambda: self._request("GET", f"/repos/{self.repo}/issues", params=params),
        )
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            self._logger.debug("No issue found with label", label=label)
            return None
        return _to_issue(data[0])

    # ---- diagnostics --------------------------------------------------
    async def test_connection(self) -> ConnectionCheck:
        """Verify authentication, repository access and issue read access, in order."""
        try:
            user = await self._request("GET", "/user")
            await self._request("GET", f"/repos/{self.repo}")
            await self._request("GET", f"/repos/{self.repo}/issues", params={"per_page": 1})
        except Exception as exc:  # noqa: BLE001 - reported, not raised
            error: RemoteIssueError = to_remote_error(exc, "test connection")
            return ConnectionCheck(success=False, message=str(error))
        login = user.get("login") if isinstance(user, dict) else None
        return ConnectionCheck(
            success=True,
            message=f"Successfully connected to {self.repo} as {login or 'unknown'}",
        )


__all__ = [
    "DEFAULT_API_URL",
    "GitHubAPIError",
    "GitHubIssueClient",
    "ConnectionCheck",
]
