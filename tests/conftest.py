"""Pytest configuration for tasksync tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install, and forces the in-memory tracker so no
test ever talks to GitHub.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

os.environ.setdefault("TASKSYNC_MOCK", "1")

# Ensure pytest-asyncio plugin is loaded explicitly so @pytest.mark.asyncio tests run
pytest_plugins = ["pytest_asyncio"]

from tasksync.config import SyncConfig  # noqa: E402
from tasksync.github_issues import MockIssuesClient  # noqa: E402
from tasksync.logging import configure_logging  # noqa: E402

SAMPLE_TASKS = """# Implementation Plan

## Phase 1: Foundation

- [x] 1. Setup workspace
- [-] 2. Database migration framework
  - Create migration runner
  - Wire tenant schemas
  - _Requirements: 2.1, 3.1_
- [ ] 9. Auth service for tenant users
  - _Requirements: 1.1_

## Phase 2: Workflows

- [ ] 14. Temporal workflow API
  - _Requirements: 6.1, (custom note)_
"""


@pytest.fixture(autouse=True)
def _fresh_logger() -> None:
    # Rebind the log handler to the stream pytest installed for this test
    configure_logging(json_logging=False, level="INFO")


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_TASKS


@pytest.fixture
def config(tmp_path: Path) -> SyncConfig:
    return SyncConfig(
        repository="acme/widgets",
        token="test-token",
        retry_delay_ms=0,
        lock_dir=tmp_path / ".tasksync",
        lock_timeout_seconds=1.0,
        mock=True,
    )


@pytest.fixture
def tracker() -> MockIssuesClient:
    return MockIssuesClient(repository="acme/widgets")
