from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from .github_rest import DEFAULT_API_URL
from .rendering import DEFAULT_LABEL_PREFIX
from .state_store import DEFAULT_STATE_FILE

CONFIG_DEFAULT = "tasksync.config.yaml"
DEFAULT_SPECS_ROOT = ".kiro/specs"
DEFAULT_PATTERNS = ["**/tasks.md"]


class ConfigError(RuntimeError):
    pass


@dataclass
class SyncConfig:
    repository: str | None = None
    token: str | None = None
    api_url: str = DEFAULT_API_URL
    max_retries: int = 3
    retry_delay: float = 1.0
    rate_limit_buffer: int = 100
    label_prefix: str = DEFAULT_LABEL_PREFIX
    specs_root: Path = Path(DEFAULT_SPECS_ROOT)
    patterns: list[str] = field(default_factory=lambda: list(DEFAULT_PATTERNS))
    state_file: Path = DEFAULT_STATE_FILE
    enabled: bool = True
    recover_by_label: bool = True
    close_completed: bool = False
    watch_interval: float = 2.0
    logging_json_enabled: bool = False
    logging_level: str = "INFO"

    def validate(self) -> list[str]:
        problems: list[str] = []
        if not self.repository:
            problems.append("github.repo is not set (env: GITHUB_REPOSITORY)")
        elif self.repository.count("/") != 1 or not all(self.repository.split("/")):
            problems.append(f"github.repo must be 'owner/repo', got {self.repository!r}")
        if not self.token:
            problems.append("github.token is not set (env: GITHUB_TOKEN)")
        if self.max_retries < 0:
            problems.append("github.max_retries must be >= 0")
        if self.retry_delay < 0:
            problems.append("github.retry_delay must be >= 0")
        if self.rate_limit_buffer < 0:
            problems.append("github.rate_limit_buffer must be >= 0")
        return problems


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        env_name = env_var_name or value[1:]
        return os.getenv(env_name)
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return cast(dict[str, Any], value)


def load_config(
    path: str | Path = CONFIG_DEFAULT,
    *,
    load_env_file: bool = True,
    dotenv_path: str | Path | None = None,
) -> SyncConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f'Configuration file not found: {p}')
    if load_env_file:
        load_dotenv(dotenv_path or p.parent / '.env', override=False)
    try:
        raw_any = yaml.safe_load(p.read_text(encoding='utf-8')) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f'Invalid YAML in {p}: {exc}') from exc
    if not isinstance(raw_any, dict):
        raise ConfigError(f'Configuration root in {p} must be a mapping')
    raw = cast(dict[str, Any], raw_any)
    gh = _section(raw, 'github')
    src = _section(raw, 'source')
    state = _section(raw, 'state')
    sync = _section(raw, 'sync')
    logging_config = _section(raw, 'logging')

    base = p.parent
    repository = _resolve_env_var(gh.get('repo')) or os.getenv('GITHUB_REPOSITORY')
    token = _resolve_env_var(gh.get('token', '$GITHUB_TOKEN')) or os.getenv('GITHUB_TOKEN')
    api_url = (
        os.getenv('TASKSYNC_GITHUB_API')
        or _resolve_env_var(gh.get('api_url'))
        or DEFAULT_API_URL
    )
    patterns_any = src.get('patterns', DEFAULT_PATTERNS)
    if isinstance(patterns_any, str):
        patterns_any = [patterns_any]
    try:
        return SyncConfig(
            repository=repository,
            token=token,
            api_url=str(api_url),
            max_retries=int(gh.get('max_retries', 3)),
            retry_delay=float(gh.get('retry_delay', 1.0)),
            rate_limit_buffer=int(gh.get('rate_limit_buffer', 100)),
            label_prefix=str(gh.get('label_prefix', DEFAULT_LABEL_PREFIX)),
            specs_root=base / src.get('root', DEFAULT_SPECS_ROOT),
            patterns=[str(x) for x in patterns_any],
            state_file=base / state.get('file', str(DEFAULT_STATE_FILE)),
            enabled=bool(sync.get('enabled', True)),
            recover_by_label=bool(sync.get('recover_by_label', True)),
            close_completed=bool(sync.get('close_completed', False)),
            watch_interval=float(sync.get('watch_interval', 2.0)),
            logging_json_enabled=bool(logging_config.get('json_enabled', False)),
            logging_level=str(logging_config.get('level', 'INFO')),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f'Invalid value in {p}: {exc}') from exc


__all__ = ["CONFIG_DEFAULT", "ConfigError", "SyncConfig", "load_config"]
