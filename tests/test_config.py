from __future__ import annotations

from pathlib import Path

import pytest

from tasksync.config import SyncConfig, config_from_mapping, load_config
from tasksync.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TASKSYNC_GITHUB_TOKEN",
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "GITHUB_REPOSITORY",
        "TASKSYNC_GITHUB_API",
        "TASKSYNC_MOCK",
    ):
        # setenv first so the original value (or its absence) is restored afterwards
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "tasksync.config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_full_config(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
enabled: true
repository: acme/widgets
label_prefix: "adx:"
max_retries: 5
retry_delay_ms: 250
rate_limit_buffer: 50
request_timeout_seconds: 4
source_file: specs/core/tasks.md
duplicate_policy: reject
summary_json: out/summary.json
logging:
  json_enabled: true
  level: DEBUG
""",
    )

    cfg = load_config(path)

    assert cfg.repository == "acme/widgets"
    assert cfg.label_prefix == "adx:"
    assert cfg.max_retries == 5
    assert cfg.retry_delay_seconds == 0.25
    assert cfg.rate_limit_buffer == 50
    assert cfg.request_timeout_seconds == 4.0
    assert cfg.source_file == tmp_path / "specs/core/tasks.md"
    assert cfg.duplicate_policy == "reject"
    assert cfg.summary_json == str(tmp_path / "out/summary.json")
    assert cfg.logging_json_enabled is True
    assert cfg.logging_level == "DEBUG"
    assert cfg.mock is False


def test_defaults_and_env_fallbacks(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_REPOSITORY", "env/repo")
    monkeypatch.setenv("GITHUB_TOKEN", "  tok-123  ")
    monkeypatch.setenv("TASKSYNC_MOCK", "1")

    cfg = config_from_mapping({}, base_dir=tmp_path)

    assert cfg.repository == "env/repo"
    assert cfg.token == "tok-123"
    assert cfg.mock is True
    assert cfg.label_prefix == "task:"
    assert cfg.max_retries == 3
    assert cfg.lock_dir == tmp_path / ".tasksync"


def test_dotenv_loaded_from_base_dir(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("GITHUB_TOKEN=from-dotenv\n", encoding="utf-8")

    cfg = config_from_mapping({"repository": "a/b"}, base_dir=tmp_path)

    assert cfg.token == "from-dotenv"


def test_schema_violation_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="max_retries"):
        config_from_mapping({"max_retries": -1}, base_dir=tmp_path)
    with pytest.raises(ConfigError, match="duplicate_policy"):
        config_from_mapping({"duplicate_policy": "merge"}, base_dir=tmp_path)


def test_missing_and_malformed_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.yaml")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(_write(tmp_path, "- just\n- a list\n"))
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(_write(tmp_path, "key: [unclosed\n"))


@pytest.mark.parametrize("repository", [None, "no-slash", "a/b/c"])
def test_live_validation_requires_repository(repository: str | None) -> None:
    with pytest.raises(ConfigError, match="repository"):
        SyncConfig(repository=repository, token="t").validate(live=True)


def test_live_validation_requires_token_unless_mock() -> None:
    with pytest.raises(ConfigError, match="token"):
        SyncConfig(repository="a/b").validate(live=True)
    SyncConfig(repository="a/b", mock=True).validate(live=True)
    SyncConfig().validate(live=False)


def test_with_overrides_returns_copy() -> None:
    cfg = SyncConfig(repository="a/b")

    other = cfg.with_overrides(repository="c/d")

    assert cfg.repository == "a/b"
    assert other.repository == "c/d"
