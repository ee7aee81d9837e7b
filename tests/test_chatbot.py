"""Tests for the Q&A chatbot and its JSON transcript store (scripted LLM)."""

from __future__ import annotations

import json

import pytest

import services.chatbot as chatbot_mod
from services.chatbot import ChatHistoryStore, Chatbot
from services.llm_service import LLMResult


# ──────────────────────────────────────────────────────────────────────────────
# ChatHistoryStore
# ──────────────────────────────────────────────────────────────────────────────

class TestChatHistoryStore:
    def test_missing_file_starts_with_greeting(self, tmp_path):
        store = ChatHistoryStore(tmp_path / "none.json")
        assert store.load() == [{"sender": "bot", "text": chatbot_mod.GREETING}]

    def test_save_then_load(self, tmp_path):
        store = ChatHistoryStore(tmp_path / "nested" / "chat.json")
        messages = [{"sender": "bot", "text": "Hi"}, {"sender": "user", "text": "Qué es O(n)?"}]
        store.save(messages)
        assert store.load() == messages

    def test_corrupt_file_falls_back_to_greeting(self, tmp_path, caplog):
        path = tmp_path / "chat.json"
        path.write_text("{not json", encoding="utf-8")
        assert ChatHistoryStore(path).load() == [{"sender": "bot", "text": chatbot_mod.GREETING}]
        assert "Failed to read chat history" in caplog.text

    def test_malformed_entries_dropped(self, tmp_path):
        path = tmp_path / "chat.json"
        path.write_text(
            json.dumps([{"sender": "user", "text": "ok"}, {"sender": "system", "text": "x"}, {"sender": "bot"}, 3]),
            encoding="utf-8",
        )
        assert ChatHistoryStore(path).load() == [{"sender": "user", "text": "ok"}]

    def test_default_path_used(self, isolated_chat_history):
        ChatHistoryStore().save([{"sender": "user", "text": "q"}])
        assert json.loads(isolated_chat_history.read_text(encoding="utf-8")) == [{"sender": "user", "text": "q"}]

    def test_reset_writes_greeting(self, tmp_path):
        store = ChatHistoryStore(tmp_path / "chat.json")
        store.save([{"sender": "user", "text": "q"}])
        store.reset()
        assert store.load() == [{"sender": "bot", "text": chatbot_mod.GREETING}]


# ──────────────────────────────────────────────────────────────────────────────
# Chatbot
# ──────────────────────────────────────────────────────────────────────────────

class TestChatbot:
    def test_sends_system_prompt_and_full_transcript(self, fake_llm_factory, tmp_path):
        llm = fake_llm_factory(lambda _m: LLMResult.ok("Big-O bounds growth."))
        bot = Chatbot(llm=llm, store=ChatHistoryStore(tmp_path / "chat.json"))

        reply = bot.send("What is Big-O?")

        assert reply == {"sender": "bot", "text": "Big-O bounds growth."}
        assert llm.calls[0] == [
            {"role": "system", "content": chatbot_mod.CHATBOT_SYSTEM_PROMPT},
            {"role": "assistant", "content": chatbot_mod.GREETING},
            {"role": "user", "content": "What is Big-O?"},
        ]

    def test_history_persists_across_instances(self, fake_llm_factory, tmp_path):
        store = ChatHistoryStore(tmp_path / "chat.json")
        Chatbot(llm=fake_llm_factory(lambda _m: LLMResult.ok("first")), store=store).send("one")

        llm = fake_llm_factory(lambda _m: LLMResult.ok("second"))
        bot = Chatbot(llm=llm, store=store)
        bot.send("two")

        assert [m["role"] for m in llm.calls[0]] == ["system", "assistant", "user", "assistant", "user"]
        assert [m["text"] for m in bot.history()] == [chatbot_mod.GREETING, "one", "first", "two", "second"]

    def test_llm_failure_becomes_bot_message(self, fake_llm_factory, tmp_path):
        store = ChatHistoryStore(tmp_path / "chat.json")
        bot = Chatbot(llm=fake_llm_factory(lambda _m: LLMResult.fail("API request timed out.")), store=store)

        reply = bot.send("hello?")

        assert reply == {"sender": "bot", "text": "Sorry, an error occurred: API request timed out."}
        assert store.load()[-1] == reply

    def test_blank_message_rejected(self, fake_llm_factory, tmp_path):
        llm = fake_llm_factory(lambda _m: LLMResult.ok("x"))
        bot = Chatbot(llm=llm, store=ChatHistoryStore(tmp_path / "chat.json"))
        with pytest.raises(ValueError, match="question"):
            bot.send("   ")
        assert llm.calls == []

    def test_reset_clears_transcript(self, fake_llm_factory, tmp_path):
        bot = Chatbot(llm=fake_llm_factory(lambda _m: LLMResult.ok("x")), store=ChatHistoryStore(tmp_path / "c.json"))
        bot.send("q")
        assert bot.reset() == [{"sender": "bot", "text": chatbot_mod.GREETING}]
        assert len(bot.history()) == 1
