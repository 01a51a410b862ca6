from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv
from jsonschema import Draft7Validator

from .errors import ConfigError

CONFIG_DEFAULT = "tasksync.config.yaml"
DEFAULT_API_URL = "https://api.github.com"
DUPLICATE_POLICIES = ("last-wins", "reject")
TOKEN_ENV_VARS = ("TASKSYNC_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN")

_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "TaskSyncConfig",
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean"},
        "repository": {"type": ["string", "null"]},
        "label_prefix": {"type": "string", "minLength": 1},
        "api_url": {"type": "string", "minLength": 1},
        "max_retries": {"type": "integer", "minimum": 0, "maximum": 10},
        "retry_delay_ms": {"type": "integer", "minimum": 0},
        "rate_limit_buffer": {"type": "integer", "minimum": 0},
        "request_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
        "max_backoff_seconds": {"type": "number", "minimum": 0},
        "source_file": {"type": "string"},
        "spec_name": {"type": ["string", "null"]},
        "duplicate_policy": {"enum": list(DUPLICATE_POLICIES)},
        "dry_run_sample_limit": {"type": "integer", "minimum": 0},
        "lock_dir": {"type": "string"},
        "lock_timeout_seconds": {"type": "number", "minimum": 0},
        "summary_json": {"type": ["string", "null"]},
        "logging": {
            "type": "object",
            "properties": {
                "json_enabled": {"type": "boolean"},
                "level": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR"]},
            },
        },
        "environment": {
            "type": "object",
            "properties": {
                "load_dotenv": {"type": "boolean"},
                "dotenv_path": {"type": ["string", "null"]},
            },
        },
    },
}


@dataclass
class SyncConfig:
    """Explicit configuration value handed to the orchestrator and hook.

    Nothing in the package reads configuration from a global; callers load a
    ``SyncConfig`` once (``load_config``) and pass it down.
    """

    enabled: bool = True
    repository: str | None = None
    label_prefix: str = "task:"
    api_url: str = DEFAULT_API_URL
    max_retries: int = 3
    retry_delay_ms: int = 1000
    rate_limit_buffer: int = 100
    token: str | None = field(default=None, repr=False)
    # Transport / backoff limits
    request_timeout_seconds: float = 10.0
    max_backoff_seconds: float = 60.0
    # Source
    source_file: Path = Path("tasks.md")
    spec_name: str | None = None
    duplicate_policy: str = "last-wins"
    dry_run_sample_limit: int = 10
    # Run serialization
    lock_dir: Path = Path(".tasksync")
    lock_timeout_seconds: float = 300.0
    summary_json: str | None = None
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    # Environment authentication
    env_load_dotenv: bool = True
    env_dotenv_path: str | None = None
    mock: bool = False

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    def with_overrides(self, **changes: Any) -> SyncConfig:
        return replace(self, **changes)

    def validate(self, *, live: bool) -> None:
        """Raise ``ConfigError`` when the configuration cannot drive a run.

        Live runs additionally need a well-formed repository and a token
        (unless the in-memory mock tracker is active).
        """
        if self.duplicate_policy not in DUPLICATE_POLICIES:
            raise ConfigError(
                f"duplicate_policy must be one of {', '.join(DUPLICATE_POLICIES)}"
            )
        if not self.label_prefix:
            raise ConfigError("label_prefix must not be empty")
        if not live:
            return
        if not self.repository or not _REPO_RE.match(self.repository):
            raise ConfigError(
                f"Invalid repository format: {self.repository!r}. Expected format: 'owner/repo'"
            )
        if not self.mock and not self.token:
            raise ConfigError(
                "No GitHub token configured; set GITHUB_TOKEN (or TASKSYNC_GITHUB_TOKEN)"
            )


def _env_flag(name: str) -> bool:
    value = os.environ.get(name)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def select_token() -> str | None:
    for name in TOKEN_ENV_VARS:
        raw = os.environ.get(name)
        if raw is None:
            continue
        token = raw.strip()
        if token:
            return token
    return None


def _schema_errors(raw: dict[str, Any]) -> list[str]:
    validator = Draft7Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(raw), key=lambda e: list(e.path))
    out: list[str] = []
    for err in errors:
        where = ".".join(str(p) for p in err.path) or "<root>"
        out.append(f"{where}: {err.message}")
    return out


def config_from_mapping(raw: dict[str, Any], *, base_dir: Path | None = None) -> SyncConfig:
    """Build a ``SyncConfig`` from an already-parsed mapping.

    Environment variables (``GITHUB_REPOSITORY``, token variables,
    ``TASKSYNC_MOCK``) fill in what the mapping leaves unset.
    """
    problems = _schema_errors(raw)
    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems))
    base = base_dir or Path.cwd()
    log_cfg = cast(dict[str, Any], raw.get("logging", {}) or {})
    env_cfg = cast(dict[str, Any], raw.get("environment", {}) or {})

    load_env = bool(env_cfg.get("load_dotenv", True))
    dotenv_path = env_cfg.get("dotenv_path")
    if load_env:
        env_file = base / (dotenv_path or ".env")
        if env_file.exists():
            load_dotenv(env_file, override=False)

    summary_json = raw.get("summary_json")
    return SyncConfig(
        enabled=bool(raw.get("enabled", True)),
        repository=raw.get("repository") or os.environ.get("GITHUB_REPOSITORY"),
        label_prefix=str(raw.get("label_prefix", "task:")),
        api_url=str(raw.get("api_url") or os.environ.get("TASKSYNC_GITHUB_API") or DEFAULT_API_URL),
        max_retries=int(raw.get("max_retries", 3)),
        retry_delay_ms=int(raw.get("retry_delay_ms", 1000)),
        rate_limit_buffer=int(raw.get("rate_limit_buffer", 100)),
        token=select_token(),
        request_timeout_seconds=float(raw.get("request_timeout_seconds", 10.0)),
        max_backoff_seconds=float(raw.get("max_backoff_seconds", 60.0)),
        source_file=base / str(raw.get("source_file", "tasks.md")),
        spec_name=raw.get("spec_name"),
        duplicate_policy=str(raw.get("duplicate_policy", "last-wins")),
        dry_run_sample_limit=int(raw.get("dry_run_sample_limit", 10)),
        lock_dir=base / str(raw.get("lock_dir", ".tasksync")),
        lock_timeout_seconds=float(raw.get("lock_timeout_seconds", 300.0)),
        summary_json=str(base / summary_json) if summary_json else None,
        logging_json_enabled=bool(log_cfg.get("json_enabled", False)),
        logging_level=str(log_cfg.get("level", "INFO")),
        env_load_dotenv=load_env,
        env_dotenv_path=dotenv_path,
        mock=_env_flag("TASKSYNC_MOCK"),
    )


def load_config(path: str | Path) -> SyncConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        loaded: Any = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ConfigError(f"Configuration in {p} must be a mapping")
    return config_from_mapping(cast(dict[str, Any], loaded), base_dir=p.parent)


__all__ = [
    "CONFIG_DEFAULT",
    "CONFIG_SCHEMA",
    "SyncConfig",
    "config_from_mapping",
    "load_config",
    "select_token",
]
