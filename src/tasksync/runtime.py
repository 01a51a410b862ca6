"""Runtime helpers for tasksync CLI orchestration."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .config import CONFIG_DEFAULT, SyncConfig, config_from_mapping, load_config
from .logging import configure_logging, get_logger


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_config(
    args: Any, *, loader: Callable[[str], SyncConfig] = load_config
) -> SyncConfig:
    """Load the config named by ``args.config`` and apply command-line overrides.

    A missing default config file yields built-in defaults; an explicitly
    named file must exist.
    """
    path = getattr(args, "config", CONFIG_DEFAULT)
    if path == CONFIG_DEFAULT and not Path(path).exists():
        cfg = config_from_mapping({})
    else:
        cfg = loader(path)
    overrides: dict[str, Any] = {}
    if getattr(args, "repo", None):
        overrides["repository"] = args.repo
    if getattr(args, "summary_json", None):
        overrides["summary_json"] = args.summary_json
    if getattr(args, "quiet", False):
        overrides["logging_level"] = "WARNING"
    if overrides:
        cfg = cfg.with_overrides(**overrides)
    configure_logging(json_logging=cfg.logging_json_enabled, level=cfg.logging_level)
    return cfg


def execute_command(handler: _HandlerCallable, command: str) -> int:
    """Run a command handler, logging its duration and exit code."""
    start = time.monotonic()
    exit_code = 1
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    finally:
        get_logger().log_performance(
            f"command_{command}",
            (time.monotonic() - start) * 1000,
            exit_code=exit_code,
        )
    return exit_code


__all__ = ["execute_command", "prepare_config"]
