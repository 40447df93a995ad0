"""tasksync - mirror markdown checkbox task lists into GitHub issues.

High-level public API:

import asyncio
from tasksync import GitHubIssueClient, SyncOrchestrator, SyncStateStore, load_config

cfg = load_config('tasksync.config.yaml')
orchestrator = SyncOrchestrator(
    cfg,
    state_store=SyncStateStore(cfg.state_file),
    client=GitHubIssueClient(token=cfg.token, repo=cfg.repository),
)
result = asyncio.run(orchestrator.sync_all_tasks(dry_run=True))
print(result.totals())

The CLI (``tasksync`` / ``python -m tasksync``) wraps the same objects.
"""

from __future__ import annotations

from .config import ConfigError, SyncConfig, load_config
from .errors import ErrorKind, RemoteIssueError
from .github_rest import GitHubIssueClient
from .models import SyncResult, SyncState, Task, TaskStatus
from .orchestrator import SyncOrchestrator
from .parser import compute_task_hash, parse_task_file, parse_tasks, validate_tasks
from .state_store import StateStoreError, SyncStateStore
from .watcher import TaskFileWatcher

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ErrorKind",
    "GitHubIssueClient",
    "RemoteIssueError",
    "StateStoreError",
    "SyncConfig",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "SyncStateStore",
    "Task",
    "TaskFileWatcher",
    "TaskStatus",
    "compute_task_hash",
    "load_config",
    "parse_task_file",
    "parse_tasks",
    "validate_tasks",
    "__version__",
]
