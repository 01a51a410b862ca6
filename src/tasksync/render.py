from __future__ import annotations

import re
from datetime import datetime, timezone

from .models import Task

MARKER_PREFIX = "<!-- tasksync:task="
LAST_UPDATED_PREFIX = "- **Last Updated:**"

IMPLEMENTATION_GUIDELINES = (
    "Follow the Temporal-first architecture principles",
    "Ensure multi-tenant isolation at all levels",
    "Implement comprehensive testing (unit, integration, workflow)",
    "Document all APIs and workflows",
    "Follow the microservices team autonomy model",
)

REQUIREMENT_DESCRIPTIONS: dict[str, str] = {
    "1.1": "Authentication and authorization system",
    "1.3": "Security and compliance",
    "1.4": "Data protection and privacy",
    "2.1": "Multi-tenant architecture",
    "2.2": "Tenant isolation and security",
    "2.3": "Tenant management and billing",
    "3.1": "Temporal-first backend microservices",
    "4.1": "File management and storage",
    "4.2": "File processing and workflows",
    "5.1": "License management",
    "5.2": "Quota enforcement",
    "5.3": "Billing integration",
    "5.4": "Subscription management",
    "6.1": "Temporal-first API gateway and integration",
    "7.1": "DevOps and operational excellence",
    "8.1": "Frontend microservices architecture",
    "8.1.1": "BFF pattern integration",
    "9.1": "Multi-language support",
    "9.2": "Internationalization",
    "9.3": "Theming system",
    "9.4": "Accessibility compliance",
    "9.5": "RTL language support",
    "9.6": "Locale-specific formatting",
    "10.1": "Module system architecture",
    "10.2": "Module marketplace",
    "10.3": "Module sandboxing",
    "10.5": "Module hot-loading",
    "10.8": "Module development SDK",
    "10.9": "Module documentation",
    "11.1": "Temporal-first hybrid AI workflow orchestration",
    "11.2": "AI service integration",
    "11.3": "AI workflow activities",
    "12.1": "Temporal-first white-label and custom domains",
    "13.1": "Team autonomy and vertical ownership",
    "14.1": "Cross-service workflow orchestration",
    "15.1": "Module Federation and micro-frontend integration",
}

_LAST_UPDATED_RE = re.compile(r"^- \*\*Last Updated:\*\*.*$", re.MULTILINE)


def requirement_description(requirement: str) -> str:
    return REQUIREMENT_DESCRIPTIONS.get(requirement, requirement)


def task_marker(task_id: str) -> str:
    return f"{MARKER_PREFIX}{task_id} -->"


def render_title(task: Task) -> str:
    return f"{task.status.icon} [{task.spec_name}] {task.id}: {task.title}"


def render_body(task: Task, *, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    status_text = task.status.value.replace("_", " ").upper()
    lines = [
        task_marker(task.id),
        "",
        f"## {task.title}",
        "",
        task.description or "No detailed description available.",
        "",
        f"**Status:** {task.status.icon} {status_text}",
        "",
        "**Implementation Guidelines:**",
        *(f"- {g}" for g in IMPLEMENTATION_GUIDELINES),
        "",
        "**Architecture Requirements:**",
    ]
    if task.requirements:
        lines.extend(f"- {req} ({requirement_description(req)})" for req in task.requirements)
    else:
        lines.append("- No specific requirements listed")
    lines.extend(
        [
            "",
            "---",
            "**Task Information**",
            "",
            f"- **Task ID:** {task.id}",
            f"- **Spec:** {task.spec_name}",
            f"- **Status:** {task.status.value}",
            f"- **Source:** {task.source}",
            f"{LAST_UPDATED_PREFIX} {stamp}",
            "",
            "*This issue was automatically synced by tasksync*",
        ]
    )
    return "\n".join(lines)


def strip_volatile(body: str) -> str:
    """Body text with the provenance timestamp removed, for drift comparison."""
    normalized = (body or "").replace("\r\n", "\n")
    return _LAST_UPDATED_RE.sub(LAST_UPDATED_PREFIX, normalized).strip()


__all__ = [
    "REQUIREMENT_DESCRIPTIONS",
    "requirement_description",
    "task_marker",
    "render_title",
    "render_body",
    "strip_volatile",
]
