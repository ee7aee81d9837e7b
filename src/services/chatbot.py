"""
Course Q&A chatbot: one persistent transcript, replayed in full to the LLM on every turn.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any

from config import CHAT_HISTORY_PATH
from services.chunk_summarizer import ChatClient
from services.llm_service import LLMClient
from utils.file_utils import ensure_directory_exists
from utils.metrics import log_metric

LOGGER = logging.getLogger("studybot.chatbot")

CHATBOT_SYSTEM_PROMPT = (
    "You are a helpful, knowledgeable AI teaching assistant. "
    "Answer students' questions about course content in friendly, clear, concise language."
)
GREETING = "Hello! I'm your AI teaching assistant. How can I help you?"
ERROR_REPLY = "Sorry, an error occurred: {error}"

_SENDER_ROLES = {"user": "user", "bot": "assistant"}

# Serializes read-modify-write of the transcript file across request threads.
_HISTORY_LOCK = threading.RLock()


def _greeting() -> list[dict[str, str]]:
    return [{"sender": "bot", "text": GREETING}]


def _valid_messages(raw: Any) -> list[dict[str, str]]:
    if not isinstance(raw, list):
        return []
    return [
        {"sender": m["sender"], "text": m["text"]}
        for m in raw
        if isinstance(m, dict) and m.get("sender") in _SENDER_ROLES and isinstance(m.get("text"), str)
    ]


class ChatHistoryStore:
    """JSON file holding the transcript as a list of {"sender": "user" | "bot", "text"}."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None

    @property
    def path(self) -> Path:
        return self._path or CHAT_HISTORY_PATH

    def load(self) -> list[dict[str, str]]:
        """Stored transcript, or the greeting alone when the file is missing or unreadable."""
        if not self.path.exists():
            return _greeting()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            LOGGER.warning("Failed to read chat history from %s: %s", self.path, e)
            return _greeting()
        messages = _valid_messages(raw)
        return messages or _greeting()

    def save(self, messages: list[dict[str, str]]) -> None:
        try:
            ensure_directory_exists(self.path.parent)
            self.path.write_text(json.dumps(messages, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            LOGGER.error("Failed to save chat history to %s: %s", self.path, e)

    def reset(self) -> list[dict[str, str]]:
        messages = _greeting()
        self.save(messages)
        return messages


class Chatbot:
    """Answers course questions with the whole conversation as context."""

    def __init__(self, llm: ChatClient | None = None, store: ChatHistoryStore | None = None) -> None:
        self._llm = llm if llm is not None else LLMClient()
        self._store = store if store is not None else ChatHistoryStore()

    def history(self) -> list[dict[str, str]]:
        with _HISTORY_LOCK:
            return self._store.load()

    def reset(self) -> list[dict[str, str]]:
        with _HISTORY_LOCK:
            return self._store.reset()

    def send(self, text: str) -> dict[str, str]:
        """
        Append a user message, ask the LLM, append and persist its reply.

        A failed LLM call becomes a bot message carrying the reason, so the
        transcript always alternates question and answer.

        Returns:
            The bot message that was appended.

        Raises:
            ValueError: If the message is blank.
        """
        if not text or not text.strip():
            raise ValueError("Please enter a question.")
        with _HISTORY_LOCK:
            messages = self._store.load()
            messages.append({"sender": "user", "text": text})
            api_messages = [{"role": "system", "content": CHATBOT_SYSTEM_PROMPT}]
            api_messages += [{"role": _SENDER_ROLES[m["sender"]], "content": m["text"]} for m in messages]

            started = time.perf_counter()
            response = self._llm.chat(api_messages)
            if response.success:
                reply = {"sender": "bot", "text": response.data}
            else:
                LOGGER.warning("Chat reply failed: %s", response.error)
                reply = {"sender": "bot", "text": ERROR_REPLY.format(error=response.error)}
            log_metric(
                "chat",
                time.perf_counter() - started,
                outcome="done" if response.success else "llm_failed",
                turns=len(messages),
            )

            messages.append(reply)
            self._store.save(messages)
        return reply
