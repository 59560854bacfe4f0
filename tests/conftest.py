"""Pytest configuration.

Adds the repository root to ``sys.path`` and provides the shared
fixtures: a throw-away SQLite database, a fake clock whose ``sleep``
advances time instantly, and a scripted video host.
"""

import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from tests.dummy_client import DummyVideoHost, FakeTime  # noqa: E402
from weather_agent import db  # noqa: E402


@pytest.fixture
def temp_db(tmp_path, monkeypatch) -> Path:
    """Redirect :data:`weather_agent.db.DB_PATH` to a fresh file."""
    path = tmp_path / "temp_chat.db"
    monkeypatch.setattr(db, "DB_PATH", path)
    db.init_db()
    return path


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime(start=1_000.0)


@pytest.fixture
def host() -> DummyVideoHost:
    return DummyVideoHost()
