"""Shared pytest fixtures for the Study Bot test suite."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

# Ensure src/ is on the path so all service imports resolve.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from services.llm_service import LLMResult  # noqa: E402


class FakeLLM:
    """Scripted chat client: *reply* maps the message list to an LLMResult."""

    def __init__(self, reply: Callable[[list[dict[str, str]]], LLMResult]) -> None:
        self._reply = reply
        self.calls: list[list[dict[str, str]]] = []

    def chat(self, messages):
        self.calls.append(list(messages))
        return self._reply(list(messages))

    @property
    def user_messages(self) -> list[str]:
        return [m["content"] for call in self.calls for m in call if m["role"] == "user"]


@pytest.fixture
def fake_llm_factory():
    return FakeLLM


@pytest.fixture(autouse=True)
def isolated_metrics_db(tmp_path, monkeypatch):
    """Point metrics at a throwaway path so tests never write to data/app.db."""
    import utils.metrics as metrics_mod

    monkeypatch.setattr(metrics_mod, "DB_PATH", tmp_path / "metrics_unmigrated.db")


@pytest.fixture(autouse=True)
def isolated_chat_history(tmp_path, monkeypatch):
    """Keep the chatbot transcript out of data/chat_history.json."""
    import services.chatbot as chatbot_mod

    path = tmp_path / "chat_history.json"
    monkeypatch.setattr(chatbot_mod, "CHAT_HISTORY_PATH", path)
    return path


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Temporary SQLite DB with all migrations applied, used by utils.metrics."""
    import migrations.migrate as migrate_mod
    import utils.metrics as metrics_mod

    db_file = tmp_path / "test_app.db"
    migrate_mod.migrate_to_latest(db_path=db_file, backups_dir=tmp_path / "backups")
    monkeypatch.setattr(migrate_mod, "DB_PATH", db_file)
    monkeypatch.setattr(metrics_mod, "DB_PATH", db_file)
    return str(db_file)


@pytest.fixture(autouse=True)
def clean_llm_env(monkeypatch):
    for name in ("LLM_API_BASE_URL", "LLM_API_KEY", "LLM_MODEL", "LLM_REQUEST_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
