from __future__ import annotations

import json
import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from tasksync.cli import main

SRC = Path(__file__).resolve().parents[1] / "src"

CONFIG = textwrap.dedent(
    """\
    repository: acme/widgets
    source_file: specs/core/tasks.md
    lock_dir: .locks
    retry_delay_ms: 0
    lock_timeout_seconds: 1
    environment:
      load_dotenv: false
    """
)


@pytest.fixture
def workspace(tmp_path: Path, sample_text: str, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("TASKSYNC_MOCK", "1")
    monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)
    tasks = tmp_path / "specs" / "core" / "tasks.md"
    tasks.parent.mkdir(parents=True)
    tasks.write_text(sample_text, encoding="utf-8")
    (tmp_path / "tasksync.config.yaml").write_text(CONFIG, encoding="utf-8")
    return tmp_path


def _config(workspace: Path) -> str:
    return str(workspace / "tasksync.config.yaml")


def test_validate_clean_file(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(["validate", "--config", _config(workspace)])

    assert rc == 0
    assert "is valid" in capsys.readouterr().out


def test_validate_reports_problems(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bad = workspace / "bad.md"
    bad.write_text("- [ ] 1. Fine\n- [x] 2 Missing dot\n- [x] 1. Again\n", encoding="utf-8")

    rc = main(["validate", "--config", _config(workspace), "--file", str(bad)])

    captured = capsys.readouterr()
    assert rc == 1
    assert "problem(s)" in captured.err


def test_sync_dry_run_prints_breakdown(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(["sync", "--config", _config(workspace), "--dry-run"])

    out = capsys.readouterr().out
    assert rc == 0
    assert "Dry run: task breakdown" in out
    assert "14: Temporal workflow API" in out


def test_sync_auto_writes_summary(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    summary = workspace / "out" / "summary.json"

    rc = main(
        ["sync", "--config", _config(workspace), "--auto", "--summary-json", str(summary)]
    )

    assert rc == 0
    assert "GitHub issues are in sync" in capsys.readouterr().out
    data = json.loads(summary.read_text(encoding="utf-8"))
    assert data["repository"] == "acme/widgets"
    assert data["totals"]["created"] == 4
    assert data["totals"]["closed"] == 1


def test_sync_repo_override(workspace: Path) -> None:
    summary = workspace / "summary.json"

    rc = main(
        [
            "sync",
            "--config",
            _config(workspace),
            "--auto",
            "--repo",
            "other/repo",
            "--summary-json",
            str(summary),
        ]
    )

    assert rc == 0
    assert json.loads(summary.read_text(encoding="utf-8"))["repository"] == "other/repo"


def test_sync_missing_file_fails(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(["sync", "--config", _config(workspace), "--file", str(workspace / "nope.md")])

    assert rc == 1
    assert "Task file not found" in capsys.readouterr().err


def test_sync_run_level_failure_exit_code(workspace: Path) -> None:
    dup = workspace / "dup.md"
    dup.write_text("- [ ] 1. One\n- [ ] 1. Two\n", encoding="utf-8")
    cfg = workspace / "tasksync.config.yaml"
    cfg.write_text(CONFIG + "duplicate_policy: reject\n", encoding="utf-8")

    rc = main(["sync", "--config", str(cfg), "--file", str(dup), "--auto"])

    assert rc == 1


def test_hook_deleted_file_is_ignored(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(
        [
            "hook",
            "--config",
            _config(workspace),
            "--file",
            str(workspace / "gone.md"),
            "--change-type",
            "deleted",
        ]
    )

    assert rc == 0
    assert "nothing to sync" in capsys.readouterr().out


def test_hook_auto_syncs(workspace: Path) -> None:
    tasks = workspace / "specs" / "core" / "tasks.md"

    rc = main(["hook", "--config", _config(workspace), "--file", str(tasks), "--auto"])

    assert rc == 0


def test_doctor_mock_mode(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(["doctor", "--config", _config(workspace)])

    out = capsys.readouterr().out
    assert rc == 0
    assert "[doctor] repository: acme/widgets" in out
    assert "mock mode detected" in out


def test_doctor_without_repository(
    workspace: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "empty.yaml"
    cfg.write_text("enabled: true\n", encoding="utf-8")

    rc = main(["doctor", "--config", str(cfg)])

    assert rc == 1
    assert "No repository configured" in capsys.readouterr().out


def test_missing_explicit_config_is_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(["validate", "--config", str(tmp_path / "absent.yaml")])

    assert rc == 1
    assert "Configuration file not found" in capsys.readouterr().err


def test_usage_error_exits_2() -> None:
    with pytest.raises(SystemExit) as exc:
        main(["sync", "--bogus"])

    assert exc.value.code == 2


def test_hook_requires_file() -> None:
    with pytest.raises(SystemExit) as exc:
        main(["hook"])

    assert exc.value.code == 2


def _run_module(*args: str, cwd: Path) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC), env.get("PYTHONPATH", "")]))
    env["TASKSYNC_MOCK"] = "1"
    return subprocess.run(
        [sys.executable, "-m", "tasksync", *args],
        capture_output=True,
        text=True,
        env=env,
        cwd=cwd,
        check=False,
    )


def test_quiet_suppresses_info_logs(workspace: Path) -> None:
    noisy = _run_module("validate", "--config", _config(workspace), cwd=workspace)
    quiet = _run_module("--quiet", "validate", "--config", _config(workspace), cwd=workspace)

    assert noisy.returncode == 0, noisy.stderr
    assert quiet.returncode == 0, quiet.stderr
    assert "Performance: command_validate" in noisy.stdout
    assert "Performance:" not in quiet.stdout
    assert "is valid" in quiet.stdout
