"""Terminal output for sync reports - ANSI colors, no external dependencies."""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from typing import TextIO

from .orchestrator import DryRunReport, RunReport


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"


def _supports_color(stream: TextIO | None = None) -> bool:
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR") or os.environ.get("TERM") == "dumb":
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def colorize(text: str, color: str, bold: bool = False, stream: TextIO | None = None) -> str:
    """Apply color to text if the stream is a color-capable terminal."""
    if not _supports_color(stream):
        return text
    prefix = (Colors.BOLD if bold else "") + color
    return f"{prefix}{text}{Colors.RESET}"


def _emit(icon: str, color: str, message: str, stream: TextIO) -> None:
    print(colorize(icon, color, bold=True, stream=stream) + " " + message, file=stream)


def print_success(message: str, stream: TextIO | None = None) -> None:
    _emit("✓", Colors.GREEN, message, stream or sys.stdout)


def print_error(message: str, stream: TextIO | None = None) -> None:
    _emit("✗", Colors.RED, message, stream or sys.stderr)


def print_warning(message: str, stream: TextIO | None = None) -> None:
    _emit("⚠", Colors.YELLOW, message, stream or sys.stdout)


def print_info(message: str, stream: TextIO | None = None) -> None:
    _emit("ℹ", Colors.BLUE, message, stream or sys.stdout)


def print_summary_box(
    title: str, items: Sequence[tuple[str, str | int]], stream: TextIO | None = None
) -> None:
    """Print a titled block of aligned key/value rows."""
    stream = stream or sys.stdout
    width = max((len(k) for k, _ in items), default=0)
    print(colorize(f"\n{title}", Colors.CYAN, bold=True, stream=stream), file=stream)
    print(colorize("─" * 60, Colors.DIM, stream=stream), file=stream)
    for key, value in items:
        text = str(value)
        if isinstance(value, int) and value > 0:
            text = colorize(text, Colors.GREEN, bold=True, stream=stream)
        print(f"  {key.ljust(width)}  {text}", file=stream)
    print(colorize("─" * 60, Colors.DIM, stream=stream), file=stream)


def render_dry_run(report: DryRunReport, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print_summary_box(
        "Dry run: task breakdown",
        [("Total tasks", report.total_tasks)]
        + [(f"Status {k}", v) for k, v in sorted(report.by_status.items())],
        stream=stream,
    )
    if report.by_component:
        print_summary_box("By component", list(report.by_component.items()), stream=stream)
    if report.by_phase:
        print_summary_box(
            "By phase",
            sorted(report.by_phase.items(), key=lambda kv: int(kv[0].split("-")[0])),
            stream=stream,
        )
    for status, sample in report.samples.items():
        if not sample:
            continue
        print(colorize(f"\nSample {status} tasks:", Colors.BOLD, stream=stream), file=stream)
        for line in sample:
            print(f"  - {line}", file=stream)
    if report.duplicates:
        print_warning(f"Duplicate task ids: {', '.join(report.duplicates)}", stream=stream)
    if report.planned is not None:
        print_summary_box("Planned actions", list(report.planned.items()), stream=stream)
    for err in report.errors:
        print_warning(f"{err.task_id}: [{err.kind.value}] {err.message}", stream=stream)
    if report.failure:
        print_error(report.failure["message"], stream=stream)


def render_run_report(report: RunReport, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print_summary_box(
        "Sync summary",
        [
            ("Total tasks", report.total_tasks),
            ("Created", report.created),
            ("Updated", report.updated),
            ("Closed", report.closed),
            ("Reopened", report.reopened),
            ("Unchanged", report.unchanged),
            ("Succeeded", report.succeeded_tasks),
            ("Errors", len(report.errors)),
            ("State", report.state.value),
        ],
        stream=stream,
    )
    for err in report.errors:
        print_warning(f"{err.task_id}: [{err.kind.value}] {err.message}", stream=stream)
    if report.duplicates:
        print_warning(f"Duplicate task ids: {', '.join(report.duplicates)}", stream=stream)
    if report.cancelled:
        print_warning("Run cancelled before all tasks were processed", stream=stream)
    if report.failure:
        print_error(report.failure["message"], stream=stream)
    elif not report.errors and not report.cancelled:
        print_success("GitHub issues are in sync", stream=stream)


__all__ = [
    "Colors",
    "colorize",
    "print_error",
    "print_info",
    "print_success",
    "print_summary_box",
    "print_warning",
    "render_dry_run",
    "render_run_report",
]
