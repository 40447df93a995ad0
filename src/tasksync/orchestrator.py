"""Sync orchestration: parse every task file, reconcile against stored state,
drive the issue client and persist state after each remote mutation.

A run moves ``IDLE -> PARSING -> RECONCILING -> DONE | FAILED``. Per-task
failures are collected on the :class:`SyncResult` and never stop the pass;
state-store failures do, since a silently partial state file is worse than a
stopped run. Runs on one orchestrator never overlap: each pass holds the
orchestrator's run lock from start to finish.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Protocol

from .config import SyncConfig
from .errors import RemoteIssueError
from .logging import get_logger
from .models import PlanEntry, RemoteIssue, SyncError, SyncResult, Task, TaskStatus
from .parser import TaskFileError, parse_task_file
from .rendering import render_body, render_labels, render_title, task_label
from .state_store import StateStoreError, SyncStateStore


class RunState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"


class IssueClient(Protocol):  # narrow contract the orchestrator relies on
    async def create_issue(
        self, title: str, body: str, labels: list[str] | None = None
    ) -> RemoteIssue: ...

    async def update_issue(
        self,
        issue_number: int,
        title: str,
        body: str,
        *,
        state: str | None = None,
        labels: list[str] | None = None,
    ) -> RemoteIssue: ...

    async def close_issue(self, issue_number: int) -> RemoteIssue: ...

    async def find_issue_by_label(self, label: str) -> RemoteIssue | None: ...


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def discover_task_files(root: Path, patterns: list[str]) -> list[Path]:
    if not root.is_dir():
        return []
    found: set[Path] = set()
    for pattern in patterns:
        found.update(p for p in root.glob(pattern) if p.is_file())
    return sorted(found)


def _error_from(exc: BaseException, operation: str, task: Task | None = None) -> SyncError:
    kind = exc.kind.value if isinstance(exc, RemoteIssueError) else None
    return SyncError(
        operation=operation,
        message=str(exc),
        task_id=task.id if task else None,
        file_path=task.file_path if task else None,
        kind=kind,
    )


class SyncOrchestrator:
    def __init__(
        self,
        config: SyncConfig,
        *,
        state_store: SyncStateStore,
        client: IssueClient,
        parse_file: Callable[[Path], list[Task]] = parse_task_file,
        task_files: list[Path] | None = None,
    ) -> None:
        self.config = config
        self.store = state_store
        self.client = client
        self._parse_file = parse_file
        self._task_files = task_files
        self._run_lock = asyncio.Lock()
        self._watching = False
        self.state = RunState.IDLE
        self._logger = get_logger()

    # ---- continuous mode ----------------------------------------------
    @property
    def watching(self) -> bool:
        return self._watching

    def start_watcher(self) -> None:
        self._watching = True
        self._logger.log_operation("watch_start")

    def stop_watcher(self) -> None:
        self._watching = False
        self._logger.log_operation("watch_stop")

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def task_files(self) -> list[Path]:
        if self._task_files is not None:
            return list(self._task_files)
        return discover_task_files(self.config.specs_root, self.config.patterns)

    # ---- run ----------------------------------------------------------
    async def sync_all_tasks(self, *, dry_run: bool = False) -> SyncResult:
        """Run one full pass; overlapping callers wait for the active pass."""
        async with self._run_lock:
            result = SyncResult(dry_run=dry_run, started_at=_stamp())
            try:
                with self._logger.timed_operation("sync", dry_run=dry_run):
                    await self._run(result)
            except Exception:
                self.state = RunState.FAILED
                result.state = self.state.value
                raise
            self.state = RunState.DONE
            result.state = self.state.value
            result.finished_at = _stamp()
            self._logger.log_operation("sync_complete", totals=result.totals())
            return result

    async def _run(self, result: SyncResult) -> None:
        if not self.store.loaded:
            self.store.load()
        self.state = RunState.PARSING
        tasks, failed_files = self._parse_all(result)
        self.state = RunState.RECONCILING
        for task in tasks:
            await self._sync_task(task, result)
        await self._close_orphans(tasks, failed_files, result)

    def _parse_all(self, result: SyncResult) -> tuple[list[Task], set[str]]:
        tasks: list[Task] = []
        failed: set[str] = set()
        seen: dict[str, Task] = {}
        for path in self.task_files():
            try:
                parsed = self._parse_file(path)
            except (TaskFileError, OSError) as exc:
                failed.add(path.as_posix())
                result.errors.append(
                    SyncError(operation="parse", message=str(exc), file_path=path.as_posix())
                )
                self._logger.log_error("task file parse failed", error=str(exc))
                continue
            for task in parsed:
                first = seen.get(task.id)
                if first is not None:
                    result.errors.append(
                        SyncError(
                            operation="parse",
                            message=(
                                f"Duplicate task id {task.id} ('{task.title}') also used by "
                                f"{first.file_path}:{first.line_number}; skipped"
                            ),
                            task_id=task.id,
                            file_path=task.file_path,
                        )
                    )
                    continue
                seen[task.id] = task
                tasks.append(task)
        result.parsed = len(tasks)
        self._logger.log_operation("parse_complete", task_count=len(tasks))
        return tasks, failed

    def _target_state(self, task: Task) -> str | None:
        if not self.config.close_completed:
            return None
        return "closed" if task.status is TaskStatus.COMPLETED else "open"

    async def _sync_task(self, task: Task, result: SyncResult) -> None:
        current_hash = task.hash
        state = self.store.get_task_state(task.id)
        if not self.store.needs_sync(task, current_hash):
            result.unchanged += 1
            if result.dry_run:
                result.plan.append(
                    PlanEntry(task.id, "skip", task.title, state.issue_number if state else None)
                )
            return
        if result.dry_run:
            self._plan_task(task, state.issue_number if state else None, result)
            return
        title = render_title(task)
        body = render_body(task)
        operation = "create issue" if state is None else "update issue"
        try:
            if state is None:
                issue, created = await self._create_or_adopt(task, title, body)
                number = issue.number
            else:
                number = state.issue_number
                await self.client.update_issue(
                    number,
                    title,
                    body,
                    state=self._target_state(task),
                    labels=render_labels(task, self.config.label_prefix),
                )
                created = False
            self.store.update_task_state(task.id, number, current_hash, task.file_path)
            self.store.save()
        except StateStoreError:
            raise
        except Exception as exc:
            result.errors.append(_error_from(exc, operation, task))
            self._logger.log_error(
                f"Failed to sync task {task.id}", error=str(exc), task_id=task.id
            )
            return
        if created:
            result.created += 1
            self._logger.log_issue_action("create", task.id, number)
        else:
            result.updated += 1
            self._logger.log_issue_action("update", task.id, number)
        if created and self._target_state(task) == "closed":
            try:
                await self.client.close_issue(number)
            except Exception as exc:
                result.errors.append(_error_from(exc, "close issue", task))

    async def _create_or_adopt(
        self, task: Task, title: str, body: str
    ) -> tuple[RemoteIssue, bool]:
        prefix = self.config.label_prefix
        if self.config.recover_by_label:
            existing = await self.client.find_issue_by_label(task_label(task, prefix))
            if existing is not None:
                self._logger.info(
                    "Adopting existing issue for task without state",
                    task_id=task.id,
                    issue_number=existing.number,
                )
                target = self._target_state(task)
                if (
                    target is None
                    and existing.state == "closed"
                    and task.status is not TaskStatus.COMPLETED
                ):
                    target = "open"
                issue = await self.client.update_issue(
                    existing.number,
                    title,
                    body,
                    state=target,
                    labels=render_labels(task, prefix),
                )
                return issue, False
        issue = await self.client.create_issue(title, body, render_labels(task, prefix))
        return issue, True

    def _plan_task(self, task: Task, number: int | None, result: SyncResult) -> None:
        if number is None:
            result.created += 1
            result.plan.append(PlanEntry(task.id, "create", task.title, None, "no sync state"))
            self._logger.log_issue_action("create", task.id, dry_run=True)
        else:
            result.updated += 1
            result.plan.append(
                PlanEntry(task.id, "update", task.title, number, "content or location changed")
            )
            self._logger.log_issue_action("update", task.id, number, dry_run=True)

    async def _close_orphans(
        self, tasks: list[Task], failed_files: set[str], result: SyncResult
    ) -> None:
        current_ids = {t.id for t in tasks}
        # tasks of unreadable files are unknown, not deleted
        current_ids.update(
            s.task_id for s in self.store.all_states() if s.file_path in failed_files
        )
        orphans = self.store.orphaned_states(current_ids)
        for state in orphans:
            if result.dry_run:
                result.closed += 1
                result.plan.append(
                    PlanEntry(state.task_id, "close", "", state.issue_number, "task removed")
                )
                continue
            try:
                await self.client.close_issue(state.issue_number)
            except Exception as exc:
                error = _error_from(exc, "close issue")
                error.task_id = state.task_id
                error.file_path = state.file_path
                result.errors.append(error)
                continue
            self.store.remove_task_state(state.task_id)
            self.store.save()
            result.closed += 1
            self._logger.log_issue_action("close", state.task_id, state.issue_number)


__all__ = ["RunState", "IssueClient", "SyncOrchestrator", "discover_task_files"]
