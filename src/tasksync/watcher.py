"""Polling file watcher that re-enters :meth:`SyncOrchestrator.sync_all_tasks`.

The orchestrator only owns the on/off flag; this module owns the polling.
Modification times (and the set of discovered files) are compared between
polls; any difference triggers a new sync pass.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from .logging import get_logger
from .models import SyncResult
from .orchestrator import SyncOrchestrator


class TaskFileWatcher:
    def __init__(self, orchestrator: SyncOrchestrator, interval: float = 2.0) -> None:
        self.orchestrator = orchestrator
        self.interval = interval
        self._snapshot: dict[Path, float] = {}
        self._logger = get_logger()

    def _scan(self) -> dict[Path, float]:
        snapshot: dict[Path, float] = {}
        for path in self.orchestrator.task_files():
            try:
                snapshot[path] = path.stat().st_mtime
            except FileNotFoundError:
                continue
        return snapshot

    def prime(self) -> None:
        self._snapshot = self._scan()

    def changed(self) -> bool:
        current = self._scan()
        if current == self._snapshot:
            return False
        self._snapshot = current
        return True

    async def poll_once(self) -> SyncResult | None:
        if not self.changed():
            return None
        self._logger.info("Task files changed, syncing", file_count=len(self._snapshot))
        return await self.orchestrator.sync_all_tasks()

    async def run(self) -> None:
        self.orchestrator.start_watcher()
        self.prime()
        try:
            while self.orchestrator.watching:
                await asyncio.sleep(self.interval)
                await self.poll_once()
        finally:
            self.orchestrator.stop_watcher()


__all__ = ["TaskFileWatcher"]
