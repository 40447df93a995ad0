"""tasksync CLI.

Subcommands:
  sync          -> create/update/close issues for every task (--json for a summary)
  validate      -> report duplicate ids, empty titles and malformed checkboxes
  status        -> sync state statistics
  check         -> connectivity self-test (auth, repository, issues)
  export-state  -> write a state backup
  import-state  -> replace state from a backup
  prune-state   -> forget mappings for tasks that no longer exist (no remote calls)
  watch         -> sync once, then re-sync whenever task files change
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

from tasksync.config import CONFIG_DEFAULT, ConfigError, SyncConfig, load_config
from tasksync.github_rest import GitHubIssueClient
from tasksync.logging import configure_logging
from tasksync.models import SyncResult
from tasksync.orchestrator import SyncOrchestrator, discover_task_files
from tasksync.parser import TaskFileError, parse_task_file, validate_task_file
from tasksync.state_store import StateStoreError, SyncStateStore
from tasksync.watcher import TaskFileWatcher

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="tasksync", description="Mirror markdown task lists into GitHub issues"
    )
    p.add_argument("--config", default=CONFIG_DEFAULT)
    p.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    ps = sub.add_parser("sync", help="Sync tasks to GitHub issues")
    ps.add_argument("--dry-run", action="store_true")
    ps.add_argument("--json", action="store_true", help="Print the run summary as JSON")

    sub.add_parser("validate", help="Validate task files without syncing")
    sub.add_parser("status", help="Show sync state statistics")
    sub.add_parser("check", help="Test GitHub authentication and repository access")

    pe = sub.add_parser("export-state", help="Export sync state for backup")
    pe.add_argument("output")
    pi = sub.add_parser("import-state", help="Import sync state from a backup")
    pi.add_argument("input")

    sub.add_parser("prune-state", help="Drop state for tasks that no longer exist")
    sub.add_parser("watch", help="Sync, then re-sync on task file changes")
    return p


def _build_client(cfg: SyncConfig) -> GitHubIssueClient:
    problems = cfg.validate()
    if problems:
        raise ConfigError("; ".join(problems))
    assert cfg.repository and cfg.token  # nosec B101 - guaranteed by validate()
    return GitHubIssueClient(
        token=cfg.token,
        repo=cfg.repository,
        base_url=cfg.api_url,
        max_retries=cfg.max_retries,
        retry_delay=cfg.retry_delay,
        rate_limit_buffer=cfg.rate_limit_buffer,
    )


def _build_orchestrator(cfg: SyncConfig) -> SyncOrchestrator:
    return SyncOrchestrator(
        cfg,
        state_store=SyncStateStore(cfg.state_file),
        client=_build_client(cfg),
    )


def _print_result(result: SyncResult) -> None:
    totals = result.totals()
    prefix = "[dry-run] " if result.dry_run else ""
    print(
        f"{prefix}parsed={totals['parsed']} created={totals['created']} "
        f"updated={totals['updated']} closed={totals['closed']} "
        f"unchanged={totals['unchanged']} errors={totals['errors']}"
    )
    for entry in result.plan:
        if entry.action != "skip":
            number = f" #{entry.issue_number}" if entry.issue_number else ""
            print(f"  {entry.action}: {entry.task_id}{number} {entry.title}".rstrip())
    for err in result.errors:
        where = err.task_id or err.file_path or "-"
        print(f"  error [{err.operation}] {where}: {err.message}", file=sys.stderr)


def _cmd_sync(cfg: SyncConfig, args: argparse.Namespace) -> int:
    if not cfg.enabled:
        print("GitHub sync is disabled in configuration")
        return 0
    orchestrator = _build_orchestrator(cfg)
    result = asyncio.run(orchestrator.sync_all_tasks(dry_run=args.dry_run))
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)
    return 0 if result.ok else 1


def _cmd_validate(cfg: SyncConfig) -> int:
    files = discover_task_files(cfg.specs_root, cfg.patterns)
    if not files:
        print(f"No task files found under {cfg.specs_root}")
        return 0
    failed = 0
    for path in files:
        report = validate_task_file(path)
        if report.valid:
            print(f"[ok] {report.file_path}")
            continue
        failed += 1
        print(f"[invalid] {report.file_path}")
        for problem in report.errors:
            print(f"  - {problem}")
    return 1 if failed else 0


def _cmd_status(cfg: SyncConfig) -> int:
    store = SyncStateStore(cfg.state_file)
    store.load()
    stats = store.stats()
    print(json.dumps({"state_file": str(store.path), **stats}, indent=2))
    return 0


def _cmd_check(cfg: SyncConfig) -> int:
    client = _build_client(cfg)
    check = asyncio.run(client.test_connection())
    print(("[ok] " if check.success else "[fail] ") + check.message)
    return 0 if check.success else 1


def _cmd_export_state(cfg: SyncConfig, args: argparse.Namespace) -> int:
    store = SyncStateStore(cfg.state_file)
    store.load()
    Path(args.output).write_text(store.export_state() + "\n", encoding="utf-8")
    print(f"Exported {len(store.all_states())} state record(s) to {args.output}")
    return 0


def _cmd_import_state(cfg: SyncConfig, args: argparse.Namespace) -> int:
    store = SyncStateStore(cfg.state_file)
    store.import_state(Path(args.input).read_text(encoding="utf-8"))
    store.save()
    print(f"Imported {len(store.all_states())} state record(s) into {store.path}")
    return 0


def _cmd_prune_state(cfg: SyncConfig) -> int:
    store = SyncStateStore(cfg.state_file)
    store.load()
    current: set[str] = set()
    for path in discover_task_files(cfg.specs_root, cfg.patterns):
        current.update(task.id for task in parse_task_file(path))
    removed = store.cleanup_orphaned_states(current)
    store.save()
    print(f"Pruned {len(removed)} state record(s)")
    for task_id in removed:
        print(f"  - {task_id}")
    return 0


async def _watch(cfg: SyncConfig) -> None:
    orchestrator = _build_orchestrator(cfg)
    _print_result(await orchestrator.sync_all_tasks())
    watcher = TaskFileWatcher(orchestrator, interval=cfg.watch_interval)
    await watcher.run()


def _cmd_watch(cfg: SyncConfig) -> int:
    try:
        asyncio.run(_watch(cfg))
    except KeyboardInterrupt:
        print("Watcher stopped")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return 2
    quiet = args.quiet or os.environ.get("TASKSYNC_QUIET") == "1" or getattr(args, "json", False)
    configure_logging(
        json_logging=cfg.logging_json_enabled,
        level="WARNING" if quiet else cfg.logging_level,
    )
    handlers: dict[str, Any] = {
        "sync": lambda: _cmd_sync(cfg, args),
        "validate": lambda: _cmd_validate(cfg),
        "status": lambda: _cmd_status(cfg),
        "check": lambda: _cmd_check(cfg),
        "export-state": lambda: _cmd_export_state(cfg, args),
        "import-state": lambda: _cmd_import_state(cfg, args),
        "prune-state": lambda: _cmd_prune_state(cfg),
        "watch": lambda: _cmd_watch(cfg),
    }
    try:
        return int(handlers[args.cmd]())
    except ConfigError as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return 2
    except StateStoreError as exc:
        print(f"[state] {exc}", file=sys.stderr)
        return 1
    except TaskFileError as exc:
        print(f"[tasks] {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"[io] {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
