"""Markdown task list parser.

Turns checkbox task lists (``- [ ] 1.1 Title``) into :class:`Task` records.
Parsing is a single forward scan keeping one "current task" accumulator;
headers and horizontal rules close the current task, indented or bulleted
lines become its description and a ``_Requirements: a, b_`` line fills
``requirements``.

Checkbox status precedence is fixed: an ``[x]`` glyph (any internal spacing)
wins over an exact ``[-]`` which wins over any other bracket content. Hand
edited files frequently contain ``[ - ]`` or ``[  ]`` and those must land on
``not_started``.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any

from .logging import get_logger
from .models import Task, TaskStatus

_COMPLETED_RE = re.compile(r"^\s*-\s*\[\s*x\s*\]\s*", re.IGNORECASE)
_IN_PROGRESS_RE = re.compile(r"^\s*-\s*\[-\]\s*")
_NOT_STARTED_RE = re.compile(r"^\s*-\s*\[.*?\]\s*")
_CHECKBOX_LIKE_RE = re.compile(r"^\s*-\s*\[")

# Order matters: first pattern that matches wins.
_TASK_ID_PATTERNS = (
    re.compile(r"^\s*-\s*\[[^\]]*\]\s*(\d+(?:\.\d+)*)\s+(.+)$"),  # "- [x] 1.1 Title"
    re.compile(r"^\s*-\s*\[[^\]]*\]\s*(\d+(?:\.\d+)*)\.\s*(.+)$"),  # "- [x] 1.1. Title"
    re.compile(r"^\s*-\s*\[[^\]]*\]\s*(.+)$"),  # "- [x] Title"
)
_NUMERIC_ID_RE = re.compile(r"^\d+(?:\.\d+)*$")
_REQUIREMENTS_RE = re.compile(r"_Requirements:\s*([^_\n]+)", re.IGNORECASE)
_RULE_RE = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})$")

FALLBACK_ID_PREFIX = "task-"


class TaskFileError(RuntimeError):
    """Raised when a task file cannot be read."""


@dataclass
class _TaskLine:
    id: str
    title: str
    status: TaskStatus
    synthesized: bool


@dataclass
class _Accumulator:
    line: _TaskLine
    line_number: int
    description: list[str] = field(default_factory=list)
    requirements: list[str] | None = None


@dataclass
class ValidationReport:
    file_path: str
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def detect_status(line: str) -> TaskStatus | None:
    if _COMPLETED_RE.match(line):
        return TaskStatus.COMPLETED
    if _IN_PROGRESS_RE.match(line):
        return TaskStatus.IN_PROGRESS
    if _NOT_STARTED_RE.match(line):
        return TaskStatus.NOT_STARTED
    return None


def synthesize_task_id(title: str) -> str:
    digest = hashlib.sha256(title.strip().lower().encode("utf-8")).hexdigest()
    return f"{FALLBACK_ID_PREFIX}{digest[:8]}"


def _parse_task_line(line: str) -> _TaskLine | None:
    status = detect_status(line)
    if status is None:
        return None
    for pattern in _TASK_ID_PATTERNS:
        m = pattern.match(line)
        if not m:
            continue
        head = m.group(1)
        if _NUMERIC_ID_RE.match(head):
            title = m.group(2) if m.lastindex and m.lastindex >= 2 else head
            return _TaskLine(id=head, title=title.strip(), status=status, synthesized=False)
        return _TaskLine(
            id=synthesize_task_id(head),
            title=head.strip(),
            status=status,
            synthesized=True,
        )
    return None


def extract_requirements(line: str) -> list[str] | None:
    m = _REQUIREMENTS_RE.search(line)
    if not m:
        return None
    reqs = [part.strip() for part in m.group(1).split(",") if part.strip()]
    return reqs or None


def _is_new_section(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("#") or bool(_RULE_RE.match(stripped))


def _is_description_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return False
    if detect_status(stripped) is not None:
        return False
    if stripped.startswith(("-", "*")) or line.startswith("  "):
        return True
    return bool(_REQUIREMENTS_RE.search(stripped))


def extract_spec_name(file_path: str | PurePath) -> str:
    """Return the directory following ``specs`` or the parent directory name."""
    parts = PurePath(file_path).parts
    for idx, part in enumerate(parts[:-2]):
        if part == "specs":
            return parts[idx + 1]
    parent = PurePath(file_path).parent.name
    return parent or "unknown"


def _finalize(acc: _Accumulator, file_path: str, spec_name: str) -> Task | None:
    if not acc.line.title:
        return None
    description = "\n".join(line for line in acc.description if line).strip()
    return Task(
        id=acc.line.id,
        title=acc.line.title,
        status=acc.line.status,
        file_path=file_path,
        line_number=acc.line_number,
        spec_name=spec_name,
        description=description or None,
        requirements=list(acc.requirements) if acc.requirements else None,
        id_synthesized=acc.line.synthesized,
    )


def parse_tasks(content: str, file_path: str | PurePath) -> list[Task]:
    """Parse markdown ``content`` into tasks, in document order."""
    path_str = str(file_path)
    spec_name = extract_spec_name(file_path)
    tasks: list[Task] = []
    current: _Accumulator | None = None

    def _flush() -> None:
        if current is None:
            return
        task = _finalize(current, path_str, spec_name)
        if task is not None:
            tasks.append(task)

    for lineno, line in enumerate(content.splitlines(), start=1):
        parsed = _parse_task_line(line)
        if parsed is not None:
            _flush()
            current = _Accumulator(line=parsed, line_number=lineno)
            continue
        if current is None:
            continue
        if _is_new_section(line):
            _flush()
            current = None
            continue
        if _is_description_line(line):
            reqs = extract_requirements(line)
            if reqs is not None:
                current.requirements = reqs
            elif not _REQUIREMENTS_RE.search(line):
                current.description.append(line.strip())
    _flush()
    return tasks


def parse_task_file(path: str | Path) -> list[Task]:
    p = Path(path)
    try:
        content = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise TaskFileError(f"Failed to read task file {p}: {exc}") from exc
    tasks = parse_tasks(content, p.as_posix())
    get_logger().debug("parsed task file", file_path=p.as_posix(), task_count=len(tasks))
    return tasks


def _canonical_content(task: Task) -> dict[str, Any]:
    return {
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "requirements": task.requirements,
    }


def compute_task_hash(task: Task) -> str:
    canonical = json.dumps(
        _canonical_content(task), sort_keys=True, separators=(",", ":")
    ).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def tasks_equivalent(first: Task, second: Task) -> bool:
    return compute_task_hash(first) == compute_task_hash(second)


def validate_tasks(content: str, file_path: str | PurePath) -> list[str]:
    """Return human readable quality problems; never raises."""
    problems: list[str] = []
    seen: dict[str, Task] = {}
    for task in parse_tasks(content, file_path):
        previous = seen.get(task.id)
        if previous is None:
            seen[task.id] = task
            continue
        if task.id_synthesized:
            problems.append(
                f"Fallback id collision {task.id} at line {task.line_number}: "
                f"'{task.title}' clashes with '{previous.title}' (line {previous.line_number})"
            )
        else:
            problems.append(f"Duplicate task ID found: {task.id} (line {task.line_number})")
    for lineno, line in enumerate(content.splitlines(), start=1):
        if not _CHECKBOX_LIKE_RE.match(line):
            continue
        parsed = _parse_task_line(line)
        if parsed is None:
            problems.append(f"Malformed task line at {lineno}: {line.strip()}")
        elif not parsed.title:
            problems.append(f"Task without title at line {lineno}: {line.strip()}")
    return problems


def validate_task_file(path: str | Path) -> ValidationReport:
    p = Path(path)
    report = ValidationReport(file_path=p.as_posix())
    try:
        content = p.read_text(encoding="utf-8")
    except OSError as exc:
        report.errors.append(f"Failed to read or parse file: {exc}")
        return report
    report.errors.extend(validate_tasks(content, p.as_posix()))
    return report


__all__ = [
    "TaskFileError",
    "ValidationReport",
    "FALLBACK_ID_PREFIX",
    "detect_status",
    "synthesize_task_id",
    "extract_requirements",
    "extract_spec_name",
    "parse_tasks",
    "parse_task_file",
    "compute_task_hash",
    "tasks_equivalent",
    "validate_tasks",
    "validate_task_file",
]
