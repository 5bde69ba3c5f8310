"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List

import pytest

# Ensure src/ is on the import path (for local runs without installing the package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from buddy.memory import PersistedMessage  # noqa: E402


class SpyModel:
    """Model gateway double that records prompts and returns a canned reply."""

    def __init__(self, reply: str = "ok") -> None:
        self.reply = reply
        self.prompts: List[str] = []
        self.temperatures: List[float] = []

    def invoke(self, prompt: str, temperature: float) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        return self.reply

    @property
    def last_prompt(self) -> str | None:
        return self.prompts[-1] if self.prompts else None


class ListStore:
    """In-memory transcript store; ``fail_query`` / ``fail_put_roles`` inject errors."""

    def __init__(self, rows: List[PersistedMessage] | None = None) -> None:
        self.rows: List[PersistedMessage] = list(rows or [])
        self.queries: List[tuple] = []
        self.fail_query: Exception | None = None
        self.fail_put_roles: set = set()

    def query(self, conversation_id: str, user_id: str) -> List[PersistedMessage]:
        self.queries.append((conversation_id, user_id))
        if self.fail_query is not None:
            raise self.fail_query
        return [r for r in self.rows if r.conversation_id == conversation_id and r.user_id == user_id]

    def put(self, message: PersistedMessage) -> None:
        if message.role in self.fail_put_roles:
            raise OSError(f"disk full while storing {message.role}")
        self.rows.append(message)


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for transcripts during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run without leftover BUDDY_* configuration."""
    for var in list(os.environ):
        if var.startswith("BUDDY"):
            monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(scope="function")
def missing_config(tmp_path: Path, clean_env) -> str:
    """Config path that does not exist, so built-in defaults apply."""
    return str(tmp_path / "no-such-config.yaml")


@pytest.fixture
def spy_model() -> SpyModel:
    return SpyModel()


@pytest.fixture
def list_store() -> ListStore:
    return ListStore()
