"""Durable task -> issue mapping.

The store owns a JSON array of sync-state records on disk and an in-memory
map keyed by task id. It follows an explicit load / use / save lifecycle:
every accessor refuses to run before :meth:`SyncStateStore.load` (or
:meth:`import_state` / :meth:`clear`) so a half-initialised store can never
be mistaken for an empty one.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .logging import get_logger
from .models import SyncState, Task

DEFAULT_STATE_FILE = Path(".kiro") / ".github-sync-state.json"
EXPORT_VERSION = "1.0.0"

_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "taskId": (str,),
    "githubIssueNumber": (int,),
    "lastSynced": (str,),
    "lastHash": (str,),
    "filePath": (str,),
}


class StateStoreError(RuntimeError):
    """State file unreadable, corrupt or used before load()."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_valid_record(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    for key, types in _FIELD_TYPES.items():
        value = raw.get(key)
        # bool is an int subclass; an issue number of True is still garbage
        if not isinstance(value, types) or isinstance(value, bool):
            return False
    return True


class SyncStateStore:
    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else DEFAULT_STATE_FILE
        self._states: dict[str, SyncState] = {}
        self._loaded = False
        self._logger = get_logger()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            raise StateStoreError("Sync state not loaded. Call load() first.")

    # ---- persistence --------------------------------------------------
    def load(self) -> None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._logger.info("No existing sync state file found, starting fresh", path=str(self.path))
            self._states = {}
            self._loaded = True
            return
        except OSError as exc:
            raise StateStoreError(f"Failed to load sync state from {self.path}: {exc}") from exc
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"Failed to load sync state from {self.path}: {exc}") from exc
        if not isinstance(raw, list):
            raise StateStoreError(f"Sync state file {self.path} must contain a JSON array")
        states: dict[str, SyncState] = {}
        for entry in raw:
            if not is_valid_record(entry):
                raise StateStoreError(f"Invalid sync state record in {self.path}: {entry!r}")
            state = SyncState.from_dict(entry)
            states[state.task_id] = state
        self._states = states
        self._loaded = True
        self._logger.info("Loaded sync state", state_count=len(states), path=str(self.path))

    def save(self) -> None:
        self._ensure_loaded()
        payload = [state.to_dict() for state in self._states.values()]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise StateStoreError(f"Failed to save sync state to {self.path}: {exc}") from exc
        self._logger.debug("Saved sync state", state_count=len(payload), path=str(self.path))

    # ---- record access -------------------------------------------------
    def get_task_state(self, task_id: str) -> SyncState | None:
        self._ensure_loaded()
        return self._states.get(task_id)

    def set_task_state(self, state: SyncState) -> None:
        self._ensure_loaded()
        self._states[state.task_id] = state
        self._logger.debug(
            "Updated task state", task_id=state.task_id, issue_number=state.issue_number
        )

    def update_task_state(
        self, task_id: str, issue_number: int, task_hash: str, file_path: str
    ) -> SyncState:
        state = SyncState(
            task_id=task_id,
            issue_number=issue_number,
            last_synced=_now(),
            last_hash=task_hash,
            file_path=file_path,
        )
        self.set_task_state(state)
        return state

    def remove_task_state(self, task_id: str) -> bool:
        self._ensure_loaded()
        removed = self._states.pop(task_id, None) is not None
        if removed:
            self._logger.debug("Removed task state", task_id=task_id)
        return removed

    def all_states(self) -> list[SyncState]:
        self._ensure_loaded()
        return list(self._states.values())

    def states_for_file(self, file_path: str) -> list[SyncState]:
        self._ensure_loaded()
        return [s for s in self._states.values() if s.file_path == file_path]

    # ---- reconciliation ------------------------------------------------
    def needs_sync(self, task: Task, current_hash: str) -> bool:
        """New task, changed content, or relocated file."""
        self._ensure_loaded()
        existing = self._states.get(task.id)
        if existing is None:
            self._logger.debug("Task needs sync: no existing state", task_id=task.id)
            return True
        if existing.last_hash != current_hash:
            self._logger.debug(
                "Task needs sync: hash changed",
                task_id=task.id,
                old_hash=existing.last_hash,
                new_hash=current_hash,
            )
            return True
        if existing.file_path != task.file_path:
            self._logger.debug(
                "Task needs sync: file path changed",
                task_id=task.id,
                old_path=existing.file_path,
                new_path=task.file_path,
            )
            return True
        return False

    def orphaned_states(self, current_task_ids: set[str] | list[str]) -> list[SyncState]:
        self._ensure_loaded()
        keep = set(current_task_ids)
        return [state for task_id, state in self._states.items() if task_id not in keep]

    def cleanup_orphaned_states(self, current_task_ids: set[str] | list[str]) -> list[str]:
        orphaned = [state.task_id for state in self.orphaned_states(current_task_ids)]
        for task_id in orphaned:
            del self._states[task_id]
        if orphaned:
            self._logger.info(
                "Cleaned up orphaned sync states",
                orphaned_count=len(orphaned),
                orphaned_ids=orphaned,
            )
        return orphaned

    def stats(self) -> dict[str, Any]:
        self._ensure_loaded()
        states = list(self._states.values())
        last = max((s.last_synced for s in states), default=None)
        return {
            "total_tasks": len(states),
            "file_count": len({s.file_path for s in states}),
            "last_sync_time": last,
        }

    # ---- backup ---------------------------------------------------------
    def export_state(self) -> str:
        self._ensure_loaded()
        document = {
            "version": EXPORT_VERSION,
            "exportedAt": _now(),
            "states": [s.to_dict() for s in self._states.values()],
        }
        return json.dumps(document, indent=2)

    def import_state(self, data: str) -> None:
        """Replace all state from an export; malformed input leaves state untouched."""
        try:
            document = json.loads(data)
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"Failed to import sync state: {exc}") from exc
        raw_states = document.get("states") if isinstance(document, dict) else None
        if not isinstance(raw_states, list):
            raise StateStoreError("Failed to import sync state: Invalid import data format")
        for entry in raw_states:
            if not is_valid_record(entry):
                raise StateStoreError(f"Failed to import sync state: Invalid sync state: {entry!r}")
        self._states = {
            state.task_id: state for state in (SyncState.from_dict(e) for e in raw_states)
        }
        self._loaded = True
        self._logger.info(
            "Imported sync state",
            state_count=len(self._states),
            import_version=document.get("version"),
        )

    def clear(self) -> None:
        self._states.clear()
        self._loaded = True
        self._logger.info("Cleared all sync state")


__all__ = [
    "DEFAULT_STATE_FILE",
    "StateStoreError",
    "SyncStateStore",
    "is_valid_record",
]
