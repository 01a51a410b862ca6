"""Deterministic label taxonomy for synced issues.

``derive_labels`` is a pure function of a task and the identity prefix. It is
shared by the dry-run planner and the live reconciliation path, so both always
see the same label set. Labels are recomputed in full on every sync and
replace whatever the issue carried before.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .models import Task

# (upper bound on the leading id segment, phase label); evaluated in order
PHASE_BUCKETS: tuple[tuple[int, str], ...] = (
    (7, "1-2"),
    (13, "3"),
    (18, "4"),
    (21, "5"),
    (25, "6"),
    (27, "7"),
    (31, "8"),
    (35, "9"),
    (37, "10"),
    (40, "11"),
)
FINAL_PHASE = "12"

# (component, title keywords); case-insensitive substring match on the title
COMPONENT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("temporal", ("temporal",)),
    ("database", ("database", "migration")),
    ("auth", ("auth",)),
    ("tenant", ("tenant",)),
    ("user", ("user",)),
    ("file", ("file",)),
    ("workflow", ("workflow",)),
    ("frontend", ("frontend", "micro-frontend")),
    ("bff", ("bff",)),
    ("api", ("api",)),
    ("testing", ("testing",)),
    ("ai", ("ai",)),
    ("module", ("module",)),
)

LABEL_CATEGORIES = ("spec", "status", "phase", "requirement", "component")

_REQUIREMENT_RE = re.compile(r"^\d+\.\d+$")


def identity_label(task_id: str, prefix: str) -> str:
    return f"{prefix}{task_id}"


def phase_label(task_id: str) -> str:
    major = int(task_id.split(".", 1)[0])
    for upper, phase in PHASE_BUCKETS:
        if major <= upper:
            return f"phase:{phase}"
    return f"phase:{FINAL_PHASE}"


def requirement_labels(requirements: Iterable[str]) -> list[str]:
    return [f"requirement:{req}" for req in requirements if _REQUIREMENT_RE.match(req)]


def component_labels(title: str) -> list[str]:
    lowered = title.lower()
    out: list[str] = []
    for component, keywords in COMPONENT_KEYWORDS:
        if any(k in lowered for k in keywords):
            out.append(f"component:{component}")
    return out


def derive_labels(task: Task, prefix: str) -> frozenset[str]:
    labels = {
        identity_label(task.id, prefix),
        f"spec:{task.spec_name}",
        f"status:{task.status.value}",
        phase_label(task.id),
    }
    labels.update(requirement_labels(task.requirements))
    labels.update(component_labels(task.title))
    return frozenset(labels)


def split_labels(labels: Iterable[str], prefix: str) -> dict[str, list[str]]:
    """Group a label set by taxonomy category (values sorted, prefix stripped).

    The identity label is reported under ``identity``.
    """
    grouped: dict[str, list[str]] = {"identity": []}
    grouped.update({cat: [] for cat in LABEL_CATEGORIES})
    for label in labels:
        if label.startswith(prefix):
            grouped["identity"].append(label[len(prefix):])
            continue
        category, _, value = label.partition(":")
        if category in grouped and value:
            grouped[category].append(value)
    return {k: sorted(v) for k, v in grouped.items()}


__all__ = [
    "PHASE_BUCKETS",
    "COMPONENT_KEYWORDS",
    "identity_label",
    "phase_label",
    "requirement_labels",
    "component_labels",
    "derive_labels",
    "split_labels",
]
