from __future__ import annotations

from datetime import datetime, timezone

from tasksync.models import SourceLocation, Task, TaskStatus
from tasksync.render import (
    LAST_UPDATED_PREFIX,
    render_body,
    render_title,
    requirement_description,
    strip_volatile,
    task_marker,
)

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _task(status: TaskStatus = TaskStatus.NOT_STARTED, **kw: object) -> Task:
    return Task(
        id="2",
        title="Database migration framework",
        status=status,
        spec_name="core",
        source=SourceLocation("specs/core/tasks.md", 7),
        **kw,  # type: ignore[arg-type]
    )


def test_titles_carry_status_icon() -> None:
    assert render_title(_task(TaskStatus.COMPLETED)) == "✅ [core] 2: Database migration framework"
    assert render_title(_task(TaskStatus.IN_PROGRESS)).startswith("🔄 [core] 2:")
    assert render_title(_task(TaskStatus.NOT_STARTED)).startswith("📋 [core] 2:")


def test_body_sections_in_order() -> None:
    body = render_body(_task(description="- Create runner", requirements=("2.1", "99.9")), now=NOW)
    lines = body.splitlines()

    assert lines[0] == task_marker("2")
    assert "## Database migration framework" in lines
    assert "- Create runner" in lines
    assert "- 2.1 (Multi-tenant architecture)" in lines
    assert "- 99.9 (99.9)" in lines
    assert f"{LAST_UPDATED_PREFIX} 2026-01-02T03:04:05Z" in lines
    assert "- **Source:** specs/core/tasks.md:7" in lines
    assert body.index("**Implementation Guidelines:**") < body.index("**Architecture Requirements:**")
    assert body.index("**Architecture Requirements:**") < body.index("**Task Information**")


def test_body_placeholders_without_details() -> None:
    body = render_body(_task(), now=NOW)

    assert "No detailed description available." in body
    assert "- No specific requirements listed" in body


def test_requirement_description_fallback() -> None:
    assert requirement_description("8.1.1") == "BFF pattern integration"
    assert requirement_description("42.0") == "42.0"


def test_strip_volatile_ignores_timestamp_and_line_endings() -> None:
    earlier = render_body(_task(), now=NOW)
    later = render_body(_task(), now=datetime(2027, 5, 5, tzinfo=timezone.utc))

    assert earlier != later
    assert strip_volatile(earlier) == strip_volatile(later)
    assert strip_volatile(earlier.replace("\n", "\r\n")) == strip_volatile(later)
