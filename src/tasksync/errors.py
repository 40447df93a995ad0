"""Error taxonomy & redaction.

Remote failures are mapped onto a closed :class:`ErrorKind` so callers can
branch on the kind instead of re-deriving the meaning of raw status codes.
Every :class:`RemoteIssueError` carries the name of the operation that failed
and the original HTTP status (``None`` for transport-level failures).

Public API:
- ErrorKind, RemoteIssueError
- classify_status(status, message) -> ErrorKind
- is_retryable_status(status) -> bool
- to_remote_error(exc, operation) -> RemoteIssueError
- redact(text) -> str
"""

from __future__ import annotations

import re
from enum import Enum

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"gh[osu]_[A-Za-z0-9]{20,40}"),  # OAuth / app installation tokens
    re.compile(r"(?i)bearer\s+[A-Za-z0-9_\-\.]{10,}"),
]

_REDACTION_PLACEHOLDER = "<redacted>"

HTTP_CLIENT_ERROR = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_UNPROCESSABLE = 422
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


class ErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    API = "api"
    UNEXPECTED = "unexpected"


_DESCRIPTIONS = {
    ErrorKind.AUTHENTICATION: "GitHub authentication failed. Please check your token",
    ErrorKind.FORBIDDEN: "GitHub access forbidden. Check repository permissions",
    ErrorKind.RATE_LIMITED: "GitHub rate limit exceeded",
    ErrorKind.NOT_FOUND: "GitHub repository or resource not found",
    ErrorKind.VALIDATION: "GitHub API validation error",
    ErrorKind.API: "GitHub API error",
    ErrorKind.UNEXPECTED: "Unexpected error",
}


class RemoteIssueError(RuntimeError):
    """A classified failure of one remote tracker operation."""

    def __init__(
        self,
        kind: ErrorKind,
        operation: str,
        message: str,
        *,
        status: int | None = None,
    ) -> None:
        self.kind = kind
        self.operation = operation
        self.status = status
        self.detail = redact(message)
        super().__init__(self._render())

    def _render(self) -> str:
        prefix = _DESCRIPTIONS[self.kind]
        if self.kind in (ErrorKind.VALIDATION, ErrorKind.API) and self.status is not None:
            prefix = f"{prefix} ({self.status}): {self.detail}"
        elif self.kind is ErrorKind.UNEXPECTED:
            prefix = f"{prefix} during {self.operation}: {self.detail}"
        return f"{prefix}. Operation: {self.operation}"

    @property
    def retryable(self) -> bool:
        return is_retryable_status(self.status)


def redact(text: str) -> str:
    """Redact sensitive tokens in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def is_retryable_status(status: int | None) -> bool:
    """Client errors are final except 429; server and transport errors retry."""
    if status is None:
        return True
    if status == HTTP_TOO_MANY_REQUESTS:
        return True
    return not (HTTP_CLIENT_ERROR <= status < HTTP_SERVER_ERROR)


def classify_status(status: int | None, message: str = "") -> ErrorKind:
    if status is None:
        return ErrorKind.UNEXPECTED
    if status == HTTP_UNAUTHORIZED:
        return ErrorKind.AUTHENTICATION
    if status == HTTP_FORBIDDEN:
        return ErrorKind.RATE_LIMITED if "rate limit" in message.lower() else ErrorKind.FORBIDDEN
    if status == HTTP_TOO_MANY_REQUESTS:
        return ErrorKind.RATE_LIMITED
    if status == HTTP_NOT_FOUND:
        return ErrorKind.NOT_FOUND
    if status == HTTP_UNPROCESSABLE:
        return ErrorKind.VALIDATION
    return ErrorKind.API


def to_remote_error(exc: BaseException, operation: str) -> RemoteIssueError:
    if isinstance(exc, RemoteIssueError):
        return exc
    status = getattr(exc, "status", None)
    if not isinstance(status, int):
        status = None
    message = str(exc) or exc.__class__.__name__
    return RemoteIssueError(classify_status(status, message), operation, message, status=status)


__all__ = [
    "ErrorKind",
    "RemoteIssueError",
    "classify_status",
    "is_retryable_status",
    "to_remote_error",
    "redact",
]
