"""Markdown task file parser.

Recognized shape::

    ## Phase 1: Foundation
    - [x] 1. Setup workspace
      - Create repository layout
      - _Requirements: 1.1, 2.1_

Every line is stripped before matching so ``\\n`` and ``\\r\\n`` files parse
identically. Checkbox lines that do not match the task pattern are logged and
skipped; the parser never raises for a malformed task line.
"""

from __future__ import annotations

import re
from collections import Counter
from pathlib import Path

from .errors import DuplicateTaskError, ParseError
from .logging import get_logger
from .models import SourceLocation, Task, TaskStatus

DESCRIPTION_WINDOW = 20

_TASK_RE = re.compile(r"^-\s+\[([ xX-])\]\s+(\d+(?:\.\d+)*)\.\s+(.+)$")
_CHECKBOX_RE = re.compile(r"^-\s*\[[ xX-]?\]")
_PHASE_RE = re.compile(r"^##\s+Phase\s+([^:]+):")
_REQUIREMENTS_RE = re.compile(r"_Requirements:\s*([^_]+)", re.IGNORECASE)

_STATUS_BY_MARKER = {
    " ": TaskStatus.NOT_STARTED,
    "x": TaskStatus.COMPLETED,
    "X": TaskStatus.COMPLETED,
    "-": TaskStatus.IN_PROGRESS,
}


def extract_spec_name(path: str | Path) -> str:
    """Spec name from a path like ``.kiro/specs/<name>/tasks.md``.

    Falls back to the parent directory name.
    """
    parts = Path(path).parts
    if "specs" in parts:
        idx = parts.index("specs")
        if idx < len(parts) - 2:
            return parts[idx + 1]
    parent = Path(path).parent.name
    return parent or "unknown"


def _split_requirements(raw: str) -> tuple[str, ...]:
    tokens: list[str] = []
    for part in raw.split(","):
        token = part.strip().strip("()").strip()
        if token:
            tokens.append(token)
    return tuple(tokens)


def _is_task_boundary(stripped: str) -> bool:
    return bool(_CHECKBOX_RE.match(stripped)) or stripped.startswith("#")


def _scan_details(lines: list[str], start: int) -> tuple[str, tuple[str, ...]]:
    """Collect description bullets and requirements following a task line.

    ``start`` is the index of the task line itself.
    """
    description: list[str] = []
    requirements: tuple[str, ...] = ()
    end = min(start + 1 + DESCRIPTION_WINDOW, len(lines))
    for raw in lines[start + 1 : end]:
        stripped = raw.strip()
        if not stripped:
            if description:
                break
            continue
        if _is_task_boundary(stripped):
            break
        req = _REQUIREMENTS_RE.search(stripped)
        if req:
            requirements = _split_requirements(req.group(1))
            break
        indented = raw[:1] in (" ", "\t")
        if stripped.startswith(("- ", "* ")) or indented:
            description.append(stripped)
            continue
        break
    return "\n".join(description), requirements


def _parse_task_line(stripped: str, line_no: int) -> tuple[TaskStatus, str, str]:
    m = _TASK_RE.match(stripped)
    if not m:
        raise ParseError(f"Malformed task line at {line_no}: {stripped}", line=line_no)
    marker, task_id, title = m.groups()
    title = title.strip()
    if not title:
        raise ParseError(f"Task {task_id} at line {line_no} has no title", line=line_no)
    return _STATUS_BY_MARKER[marker], task_id, title


def parse_tasks(
    text: str,
    *,
    spec_name: str,
    source_path: str = "tasks.md",
) -> list[Task]:
    """Parse markdown ``text`` into an ordered list of tasks.

    Duplicate ids are kept in order; see ``resolve_duplicates``.
    """
    logger = get_logger()
    lines = text.splitlines()
    tasks: list[Task] = []
    phase: str | None = None
    for idx, raw in enumerate(lines):
        stripped = raw.strip()
        phase_match = _PHASE_RE.match(stripped)
        if phase_match:
            phase = phase_match.group(1).strip()
            continue
        if not _CHECKBOX_RE.match(stripped):
            continue
        line_no = idx + 1
        try:
            status, task_id, title = _parse_task_line(stripped, line_no)
        except ParseError as exc:
            logger.warning(
                "task_line_skipped", error=str(exc), line_number=line_no, source_path=source_path
            )
            continue
        description, requirements = _scan_details(lines, idx)
        tasks.append(
            Task(
                id=task_id,
                title=title,
                status=status,
                spec_name=spec_name,
                source=SourceLocation(source_path, line_no),
                requirements=requirements,
                description=description,
                phase=phase,
            )
        )
    logger.debug("tasks_parsed", task_count=len(tasks), source_path=source_path)
    return tasks


def parse_task_file(path: str | Path, spec_name: str | None = None) -> list[Task]:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    return parse_tasks(text, spec_name=spec_name or extract_spec_name(p), source_path=str(p))


def find_duplicates(tasks: list[Task]) -> list[str]:
    counts = Counter(t.id for t in tasks)
    seen: list[str] = []
    for task in tasks:
        if counts[task.id] > 1 and task.id not in seen:
            seen.append(task.id)
    return seen


def resolve_duplicates(tasks: list[Task], policy: str = "last-wins") -> tuple[list[Task], list[str]]:
    """Apply the duplicate id policy.

    ``last-wins``: the last occurrence of an id replaces earlier ones and takes
    the position of the first occurrence. ``reject``: raise
    ``DuplicateTaskError`` listing every duplicated id.
    """
    duplicates = find_duplicates(tasks)
    if not duplicates:
        return list(tasks), []
    if policy == "reject":
        raise DuplicateTaskError(duplicates)
    latest: dict[str, Task] = {t.id: t for t in tasks}
    resolved: list[Task] = []
    emitted: set[str] = set()
    for task in tasks:
        if task.id in emitted:
            continue
        emitted.add(task.id)
        resolved.append(latest[task.id])
    get_logger().warning("duplicate_task_ids", duplicates=duplicates, policy=policy)
    return resolved, duplicates


def validate_tasks(text: str) -> list[str]:
    """Return human-readable problems found in a task file (empty == valid)."""
    problems: list[str] = []
    for idx, raw in enumerate(text.splitlines()):
        stripped = raw.strip()
        if _CHECKBOX_RE.match(stripped) and not _TASK_RE.match(stripped):
            problems.append(f"Malformed task line at {idx + 1}: {stripped}")
    tasks = parse_tasks(text, spec_name="validate")
    for task_id in find_duplicates(tasks):
        lines = ", ".join(str(t.source.line) for t in tasks if t.id == task_id)
        problems.append(f"Duplicate task ID found: {task_id} (lines {lines})")
    return problems


__all__ = [
    "DESCRIPTION_WINDOW",
    "extract_spec_name",
    "parse_tasks",
    "parse_task_file",
    "find_duplicates",
    "resolve_duplicates",
    "validate_tasks",
]
