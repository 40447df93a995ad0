from __future__ import annotations

import pytest

from tasksync.errors import (
    ErrorKind,
    RemoteIssueError,
    classify_status,
    is_retryable_status,
    redact,
    to_remote_error,
)
from tasksync.github_rest import GitHubAPIError


@pytest.mark.parametrize(
    ("status", "message", "kind"),
    [
        (401, "Bad credentials", ErrorKind.AUTHENTICATION),
        (403, "Resource not accessible", ErrorKind.FORBIDDEN),
        (403, "API rate limit exceeded for user", ErrorKind.RATE_LIMITED),
        (429, "", ErrorKind.RATE_LIMITED),
        (404, "Not Found", ErrorKind.NOT_FOUND),
        (422, "Validation Failed", ErrorKind.VALIDATION),
        (500, "boom", ErrorKind.API),
        (None, "connection reset", ErrorKind.UNEXPECTED),
    ],
)
def test_classify_status(status, message, kind):
    assert classify_status(status, message) is kind


def test_retryable_statuses():
    assert is_retryable_status(None)
    assert is_retryable_status(429)
    assert is_retryable_status(502)
    assert not is_retryable_status(404)
    assert not is_retryable_status(422)


def test_remote_error_messages_name_the_operation():
    err = RemoteIssueError(ErrorKind.AUTHENTICATION, "create issue", "Bad credentials", status=401)
    assert str(err) == "GitHub authentication failed. Please check your token. Operation: create issue"
    assert not err.retryable

    err = RemoteIssueError(ErrorKind.VALIDATION, "update issue", "title missing", status=422)
    assert "(422): title missing" in str(err)

    err = RemoteIssueError(ErrorKind.UNEXPECTED, "close issue", "socket closed")
    assert str(err).startswith("Unexpected error during close issue: socket closed")
    assert err.retryable


def test_to_remote_error_from_api_error():
    exc = GitHubAPIError("failed with 404: Not Found", status=404, response_text="{}")
    err = to_remote_error(exc, "update issue")
    assert err.kind is ErrorKind.NOT_FOUND
    assert err.status == 404
    assert err.operation == "update issue"
    assert to_remote_error(err, "other") is err


def test_to_remote_error_without_status():
    err = to_remote_error(ConnectionError("reset by peer"), "find issue by label")
    assert err.kind is ErrorKind.UNEXPECTED
    assert err.status is None


def test_redact_tokens():
    sample = (
        "Token ghp_ABCDEFGHIJKLMNOPQRSTUVWX plus github_pat_1234567890abcdefghijkl "
        "and Authorization: Bearer abcdefghijklmnop"
    )
    out = redact(sample)
    assert "ghp_" not in out
    assert "github_pat_" not in out
    assert "abcdefghijklmnop" not in out
    assert out.count("<redacted>") == 3


def test_remote_error_detail_is_redacted():
    err = RemoteIssueError(
        ErrorKind.API, "create issue", "echo ghs_ABCDEFGHIJKLMNOPQRSTUVWX", status=500
    )
    assert "ghs_" not in str(err)
    assert "<redacted>" in err.detail
