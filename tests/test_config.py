from __future__ import annotations

from pathlib import Path

import pytest

from tasksync.config import ConfigError, SyncConfig, load_config
from tasksync.github_rest import DEFAULT_API_URL

FULL_CONFIG = """
github:
  repo: acme/widgets
  token: $CUSTOM_TOKEN
  api_url: https://ghe.example.com/api/v3
  max_retries: 5
  retry_delay: 0.25
  rate_limit_buffer: 50
  label_prefix: "task:"
source:
  root: docs/specs
  patterns: ["*/tasks.md", "*/todo.md"]
state:
  file: state/sync.json
sync:
  enabled: false
  recover_by_label: false
  close_completed: true
  watch_interval: 0.5
logging:
  json_enabled: true
  level: DEBUG
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # set-then-delete so monkeypatch restores the absent state afterwards
    for name in ("GITHUB_TOKEN", "GITHUB_REPOSITORY", "TASKSYNC_GITHUB_API", "CUSTOM_TOKEN"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "tasksync.config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_full_config(tmp_path, monkeypatch):
    monkeypatch.setenv("CUSTOM_TOKEN", "secret")
    cfg = load_config(_write(tmp_path, FULL_CONFIG), load_env_file=False)

    assert cfg.repository == "acme/widgets"
    assert cfg.token == "secret"
    assert cfg.api_url == "https://ghe.example.com/api/v3"
    assert (cfg.max_retries, cfg.retry_delay, cfg.rate_limit_buffer) == (5, 0.25, 50)
    assert cfg.label_prefix == "task:"
    assert cfg.specs_root == tmp_path / "docs/specs"
    assert cfg.patterns == ["*/tasks.md", "*/todo.md"]
    assert cfg.state_file == tmp_path / "state/sync.json"
    assert cfg.enabled is False
    assert cfg.recover_by_label is False
    assert cfg.close_completed is True
    assert cfg.watch_interval == 0.5
    assert cfg.logging_json_enabled is True
    assert cfg.logging_level == "DEBUG"
    assert cfg.validate() == []


def test_defaults_and_env_fallbacks(tmp_path, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "env-token")
    monkeypatch.setenv("GITHUB_REPOSITORY", "octo/repo")
    cfg = load_config(_write(tmp_path, "{}\n"), load_env_file=False)

    assert cfg.repository == "octo/repo"
    assert cfg.token == "env-token"
    assert cfg.api_url == DEFAULT_API_URL
    assert cfg.label_prefix == "kiro:"
    assert cfg.specs_root == tmp_path / ".kiro/specs"
    assert cfg.patterns == ["**/tasks.md"]
    assert cfg.state_file == tmp_path / ".kiro/.github-sync-state.json"
    assert cfg.recover_by_label is True
    assert cfg.close_completed is False


def test_api_url_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("TASKSYNC_GITHUB_API", "https://ghe.internal/api/v3")
    cfg = load_config(_write(tmp_path, FULL_CONFIG), load_env_file=False)
    assert cfg.api_url == "https://ghe.internal/api/v3"


def test_dotenv_file_supplies_token(tmp_path):
    (tmp_path / ".env").write_text("GITHUB_TOKEN=from-dotenv\n", encoding="utf-8")
    cfg = load_config(_write(tmp_path, "github:\n  repo: acme/widgets\n"))
    assert cfg.token == "from-dotenv"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "text",
    ["github: [unclosed\n", "- just\n- a list\n", "github: 3\n", "github:\n  max_retries: many\n"],
)
def test_invalid_config(tmp_path, text):
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, text), load_env_file=False)


def test_validate_reports_problems():
    problems = SyncConfig(repository="nope", token=None, max_retries=-1).validate()
    assert any("owner/repo" in p for p in problems)
    assert any("token" in p for p in problems)
    assert any("max_retries" in p for p in problems)
    assert any("GITHUB_REPOSITORY" in p for p in SyncConfig(token="t").validate())
