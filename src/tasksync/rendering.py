"""Issue title, body and label rendering for synced tasks."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from .models import Task, TaskStatus

DEFAULT_LABEL_PREFIX = "kiro:"
FOOTER = "*This issue was automatically created by tasksync*"

_STATUS_EMOJI = {
    TaskStatus.COMPLETED: "✅",
    TaskStatus.IN_PROGRESS: "\U0001f504",
    TaskStatus.NOT_STARTED: "\U0001f4cb",
}
_PHASE_RE = re.compile(r"^(\d+)")
_LABEL_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9-]")


def task_label(task: Task, prefix: str = DEFAULT_LABEL_PREFIX) -> str:
    """The identity label used to find a task's issue when state is missing."""
    return f"{prefix}{task.id}"


def render_title(task: Task) -> str:
    return f"{_STATUS_EMOJI[task.status]} [{task.spec_name}] {task.id}: {task.title}"


def render_labels(task: Task, prefix: str = DEFAULT_LABEL_PREFIX) -> list[str]:
    labels = [
        task_label(task, prefix),
        f"spec:{task.spec_name}",
        f"status:{task.status.value}",
    ]
    phase = _PHASE_RE.match(task.id)
    if phase and not task.id_synthesized:
        labels.append(f"phase:{phase.group(1)}")
    for req in task.requirements or []:
        labels.append(f"requirement:{_LABEL_UNSAFE_RE.sub('-', req).lower()}")
    return labels


def render_body(task: Task, *, now: datetime | None = None) -> str:
    """Issue body: description, then a provenance block and footer.

    The provenance block references ``file_path:line_number`` which is why a
    relocated task is re-synced even when its content hash is unchanged.
    """
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    parts: list[str] = []
    if task.description:
        parts.append(task.description)
        parts.append("")
    parts.extend(
        [
            "---",
            "**Kiro Task Information**",
            "",
            f"- **Task ID:** {task.id}",
            f"- **Spec:** {task.spec_name}",
            f"- **Status:** {task.status.value}",
            f"- **Source:** {task.file_path}:{task.line_number}",
        ]
    )
    if task.requirements:
        parts.append(f"- **Requirements:** {', '.join(task.requirements)}")
    parts.append(f"- **Last Updated:** {stamp}")
    parts.append("")
    parts.append(FOOTER)
    return "\n".join(parts)


__all__ = [
    "DEFAULT_LABEL_PREFIX",
    "task_label",
    "render_title",
    "render_labels",
    "render_body",
]
