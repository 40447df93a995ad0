"""Pytest configuration for tasksync tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`).
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from tasksync import logging as tasksync_logging  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    # handlers bind sys.stdout at creation; capture swaps it per test
    monkeypatch.setattr(tasksync_logging, "_GLOBAL", None)


@pytest.fixture
def specs_root(tmp_path: Path) -> Path:
    root = tmp_path / ".kiro" / "specs"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def write_tasks(specs_root: Path) -> Callable[[str, str], Path]:
    def _write(spec: str, content: str) -> Path:
        spec_dir = specs_root / spec
        spec_dir.mkdir(parents=True, exist_ok=True)
        path = spec_dir / "tasks.md"
        path.write_text(content, encoding="utf-8")
        return path

    return _write
