from __future__ import annotations

import difflib
from typing import Any

from .models import Issue
from .render import strip_volatile

MAX_BODY_DIFF_LINES = 120


def title_changed(desired_title: str, issue: Issue) -> bool:
    return desired_title.strip() != (issue.title or "").strip()


def body_changed(desired_body: str, issue: Issue) -> bool:
    return strip_volatile(desired_body) != strip_volatile(issue.body)


def labels_changed(desired_labels: frozenset[str], issue: Issue) -> bool:
    return set(desired_labels) != set(issue.labels)


def needs_content_update(desired_title: str, desired_body: str, issue: Issue) -> bool:
    return title_changed(desired_title, issue) or body_changed(desired_body, issue)


def compute_diff(
    desired_title: str,
    desired_body: str,
    desired_labels: frozenset[str],
    issue: Issue,
) -> dict[str, Any]:
    d: dict[str, Any] = {}
    if title_changed(desired_title, issue):
        d["title_from"] = issue.title
        d["title_to"] = desired_title
    if labels_changed(desired_labels, issue):
        d["labels_added"] = sorted(set(desired_labels) - set(issue.labels))
        d["labels_removed"] = sorted(set(issue.labels) - set(desired_labels))
    old_body = strip_volatile(issue.body).splitlines()
    new_body = strip_volatile(desired_body).splitlines()
    if old_body != new_body:
        diff_lines = list(difflib.unified_diff(old_body, new_body, lineterm="", n=3))
        if len(diff_lines) > MAX_BODY_DIFF_LINES:
            diff_lines = diff_lines[:MAX_BODY_DIFF_LINES] + ["... (truncated)"]
        d["body_changed"] = True
        d["body_diff"] = diff_lines
    return d


__all__ = [
    "needs_content_update",
    "labels_changed",
    "compute_diff",
    "MAX_BODY_DIFF_LINES",
]
