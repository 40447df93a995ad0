from __future__ import annotations

import json
from pathlib import Path

import pytest

from tasksync import cli
from tasksync.github_rest import ConnectionCheck
from tasksync.models import RemoteIssue
from tasksync.state_store import SyncStateStore

CONFIG = """
github:
  repo: acme/widgets
  token: dummy-token
"""


class _FakeClient:
    def __init__(self) -> None:
        self.created: list[str] = []
        self.closed: list[int] = []

    async def create_issue(self, title, body, labels=None):
        self.created.append(title)
        return RemoteIssue(len(self.created), title, body, "open", list(labels or []))

    async def update_issue(self, issue_number, title, body, *, state=None, labels=None):
        return RemoteIssue(issue_number, title, body, state or "open")

    async def close_issue(self, issue_number):
        self.closed.append(issue_number)
        return RemoteIssue(issue_number, "", "", "closed")

    async def find_issue_by_label(self, label):
        return None

    async def test_connection(self):
        return ConnectionCheck(success=True, message="Successfully connected to acme/widgets as octocat")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("GITHUB_TOKEN", "GITHUB_REPOSITORY", "TASKSYNC_GITHUB_API", "TASKSYNC_QUIET"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)


@pytest.fixture
def config_path(tmp_path: Path, specs_root: Path) -> Path:
    path = tmp_path / "tasksync.config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


@pytest.fixture
def fake_client(monkeypatch) -> _FakeClient:
    client = _FakeClient()
    monkeypatch.setattr(cli, "_build_client", lambda cfg: client)
    return client


def _run(config_path: Path, *args: str) -> int:
    return cli.main(["--config", str(config_path), "--quiet", *args])


def test_missing_config_exit_code(tmp_path, capsys):
    assert cli.main(["--config", str(tmp_path / "absent.yaml"), "status"]) == 2
    assert "[config]" in capsys.readouterr().err


def test_sync_json_summary(config_path, write_tasks, fake_client, capsys):
    write_tasks("demo", "- [ ] 1 First\n- [x] 2 Second\n")

    assert cli.main(["--config", str(config_path), "sync", "--json"]) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["totals"]["created"] == 2
    assert summary["totals"]["errors"] == 0
    assert summary["state"] == "done"
    assert len(fake_client.created) == 2


def test_sync_at_default_log_level(config_path, write_tasks, fake_client, capsys):
    write_tasks("demo", "- [ ] 1 First\n")

    assert cli.main(["--config", str(config_path), "sync"]) == 0

    out = capsys.readouterr().out
    assert "Operation: sync_complete" in out
    assert "parsed=1 created=1" in out
    assert fake_client.created == ["\U0001f4cb [demo] 1: First"]


def test_sync_dry_run_text(config_path, write_tasks, fake_client, capsys):
    write_tasks("demo", "- [ ] 1 First\n")

    assert _run(config_path, "sync", "--dry-run") == 0

    out = capsys.readouterr().out
    assert "[dry-run] parsed=1 created=1" in out
    assert "create: 1 First" in out
    assert fake_client.created == []


def test_sync_without_token_is_config_error(config_path, write_tasks, capsys):
    config_path.write_text("github:\n  repo: acme/widgets\n", encoding="utf-8")
    write_tasks("demo", "- [ ] 1 First\n")

    assert _run(config_path, "sync") == 2
    assert "github.token is not set" in capsys.readouterr().err


def test_sync_disabled(config_path, fake_client, capsys):
    config_path.write_text(CONFIG + "sync:\n  enabled: false\n", encoding="utf-8")
    assert _run(config_path, "sync") == 0
    assert "disabled" in capsys.readouterr().out
    assert fake_client.created == []


def test_validate_exit_codes(config_path, write_tasks, capsys):
    write_tasks("good", "- [ ] 1 First\n")
    assert _run(config_path, "validate") == 0

    write_tasks("bad", "- [ ] 1 First\n- [ ] 1 Again\n")
    assert _run(config_path, "validate") == 1
    out = capsys.readouterr().out
    assert "[invalid]" in out
    assert "Duplicate task ID found: 1 (line 2)" in out


def test_status_and_state_backup(config_path, write_tasks, fake_client, tmp_path, capsys):
    write_tasks("demo", "- [ ] 1 First\n")
    assert _run(config_path, "sync") == 0
    capsys.readouterr()

    assert _run(config_path, "status") == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["total_tasks"] == 1

    backup = tmp_path / "backup.json"
    assert _run(config_path, "export-state", str(backup)) == 0
    assert json.loads(backup.read_text(encoding="utf-8"))["states"][0]["taskId"] == "1"

    state_file = tmp_path / ".kiro" / ".github-sync-state.json"
    state_file.unlink()
    assert _run(config_path, "import-state", str(backup)) == 0
    store = SyncStateStore(state_file)
    store.load()
    assert store.get_task_state("1") is not None


def test_import_state_rejects_bad_backup(config_path, tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text('{"states": "nope"}', encoding="utf-8")
    assert _run(config_path, "import-state", str(bad)) == 1
    assert "[state]" in capsys.readouterr().err


def test_prune_state_drops_records_without_closing(config_path, write_tasks, fake_client, capsys):
    write_tasks("demo", "- [ ] 1 First\n- [ ] 2 Second\n")
    assert _run(config_path, "sync") == 0
    write_tasks("demo", "- [ ] 1 First\n")

    assert _run(config_path, "prune-state") == 0

    assert "Pruned 1 state record(s)" in capsys.readouterr().out
    assert fake_client.closed == []


def test_check_command(config_path, fake_client, capsys):
    assert _run(config_path, "check") == 0
    assert "[ok] Successfully connected" in capsys.readouterr().out
