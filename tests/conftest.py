"""Root-level pytest fixtures for all tests.

Provides:
- An in-memory fake backend
- A ChatEngine wired to it with fast polling
- Isolation from the developer's real config and hint files
"""

import os

import pytest

from src.engine.engine import ChatEngine
from src.engine.hints import HintStore
from src.engine.notices import NoticeBoard
from tests.helpers.fake_backend import FakeBackend


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep TAURUS_* variables and stray config files out of every test."""
    for key in list(os.environ):
        if key.startswith("TAURUS_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def backend() -> FakeBackend:
    """Fake backend with a token configured."""
    return FakeBackend()


@pytest.fixture
def notices() -> NoticeBoard:
    return NoticeBoard()


@pytest.fixture
def hints_path(tmp_path):
    return tmp_path / "state" / "hints.json"


@pytest.fixture
def engine(backend, hints_path) -> ChatEngine:
    """ChatEngine over the fake backend, polling every millisecond."""
    return ChatEngine(
        backend,
        hints=HintStore(hints_path),
        user_id="user-1",
        max_attempts=3,
        interval_ms=1,
    )
