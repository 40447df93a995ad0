from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Task:
    """Canonical in-memory representation of one checkbox task.

    Produced by :mod:`tasksync.parser`; the content fingerprint is derived
    from ``title``, ``description``, ``status`` and ``requirements`` only so
    provenance changes never alter it.
    """

    id: str
    title: str
    status: TaskStatus
    file_path: str
    line_number: int
    spec_name: str
    description: str | None = None
    requirements: list[str] | None = None
    id_synthesized: bool = False

    @property
    def hash(self) -> str:
        from .parser import compute_task_hash  # noqa: PLC0415 - avoid import cycle

        return compute_task_hash(self)


@dataclass
class SyncState:
    task_id: str
    issue_number: int
    last_synced: str
    last_hash: str
    file_path: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "githubIssueNumber": self.issue_number,
            "lastSynced": self.last_synced,
            "lastHash": self.last_hash,
            "filePath": self.file_path,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SyncState:
        return cls(
            task_id=raw["taskId"],
            issue_number=raw["githubIssueNumber"],
            last_synced=raw["lastSynced"],
            last_hash=raw["lastHash"],
            file_path=raw["filePath"],
        )


@dataclass
class RateLimitSnapshot:
    limit: int
    remaining: int
    reset: int  # epoch seconds
    used: int
    checked_at: float = 0.0


@dataclass
class RemoteIssue:
    number: int
    title: str
    body: str
    state: str
    labels: list[str] = field(default_factory=list)
    html_url: str = ""


@dataclass
class PlanEntry:
    task_id: str
    action: str  # create|update|close|skip
    title: str
    issue_number: int | None = None
    reason: str | None = None


@dataclass
class SyncError:
    operation: str
    message: str
    task_id: str | None = None
    file_path: str | None = None
    kind: str | None = None


@dataclass
class SyncResult:
    dry_run: bool = False
    parsed: int = 0
    created: int = 0
    updated: int = 0
    closed: int = 0
    unchanged: int = 0
    errors: list[SyncError] = field(default_factory=list)
    plan: list[PlanEntry] = field(default_factory=list)
    state: str = "idle"
    started_at: str = ""
    finished_at: str = ""

    @property
    def ok(self) -> bool:
        return not self.errors

    def totals(self) -> dict[str, int]:
        return {
            "parsed": self.parsed,
            "created": self.created,
            "updated": self.updated,
            "closed": self.closed,
            "unchanged": self.unchanged,
            "errors": len(self.errors),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "state": self.state,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "totals": self.totals(),
            "errors": [vars(err) for err in self.errors],
            "plan": [vars(entry) for entry in self.plan],
        }


__all__ = [
    "TaskStatus",
    "Task",
    "SyncState",
    "RateLimitSnapshot",
    "RemoteIssue",
    "PlanEntry",
    "SyncError",
    "SyncResult",
]
