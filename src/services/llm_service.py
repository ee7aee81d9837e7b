"""
LLM client: role-tagged chat messages in, tagged success/failure result out.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config import DEFAULT_TEMPERATURE, ApiSettings, load_api_settings

LOGGER = logging.getLogger("studybot.llm")

NOT_CONFIGURED_ERROR = "API is not configured. Set the API base URL and key on the settings page first."
EMPTY_REPLY_ERROR = "API response did not contain a reply."

_MESSAGE_TYPES: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


@dataclass(frozen=True)
class LLMResult:
    """Outcome of one chat-completion call: reply text on success, reason on failure."""

    success: bool
    data: str = ""
    error: str = ""

    @classmethod
    def ok(cls, data: str) -> LLMResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> LLMResult:
        return cls(success=False, error=error)


def _to_langchain_messages(messages: Sequence[dict[str, str]]) -> list[BaseMessage]:
    out: list[BaseMessage] = []
    for m in messages:
        role = str(m.get("role") or "")
        message_type = _MESSAGE_TYPES.get(role)
        if message_type is None:
            raise ValueError(f"Unsupported message role: {role!r}")
        out.append(message_type(content=str(m.get("content") or "")))
    return out


_AUTH_SIGNALS = ("invalid api key", "invalid_api_key", "incorrect api key", "authentication", "error code: 401")
_QUOTA_SIGNALS = ("insufficient_quota", "quota", "rate limit", "rate_limit", "error code: 429")
_CONTEXT_SIGNALS = ("context_length_exceeded", "maximum context length")


def _describe_error(e: Exception) -> str:
    """Map provider exceptions to a message that can be shown to the user as is."""
    err_msg = str(e).lower()
    if any(s in err_msg for s in _AUTH_SIGNALS):
        return "API key is invalid, please check it and try again."
    if any(s in err_msg for s in _QUOTA_SIGNALS):
        return "API balance is insufficient or requests are too frequent, please try again later."
    if any(s in err_msg for s in _CONTEXT_SIGNALS):
        return "The request is too long for the model's context window."
    if "timed out" in err_msg or "timeout" in err_msg:
        return "API request timed out."
    return f"API request failed: {e!s}"


def _strip_json_fences(raw: str) -> str:
    """Remove markdown code fences and surrounding whitespace from LLM output."""
    text = raw.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```\s*$", "", text)
    return text.strip()


def parse_json_reply(raw: str) -> Any:
    """
    Parse an LLM reply as JSON, unwrapping a surrounding ```json fence if present.

    Raises:
        json.JSONDecodeError: If the reply is not valid JSON.
    """
    return json.loads(_strip_json_fences(raw))


class LLMClient:
    """Chat-completion client for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        settings_provider: Callable[[], ApiSettings] = load_api_settings,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self._settings_provider = settings_provider
        self.temperature = temperature

    def _make_chat_model(self, settings: ApiSettings) -> ChatOpenAI:
        return ChatOpenAI(
            model=settings.model,
            api_key=settings.api_key,
            base_url=settings.base_url,
            temperature=self.temperature,
            timeout=settings.timeout_s,
        )

    def chat(self, messages: Sequence[dict[str, str]]) -> LLMResult:
        """
        Send an ordered list of {"role", "content"} messages and return the reply.

        Transport and provider failures are returned as LLMResult.fail, never raised.

        Raises:
            ValueError: If a message has a role other than system, user or assistant.
        """
        lc_messages = _to_langchain_messages(messages)
        settings = self._settings_provider()
        if not settings.is_configured:
            return LLMResult.fail(NOT_CONFIGURED_ERROR)
        try:
            response = self._make_chat_model(settings).invoke(lc_messages)
        except Exception as e:  # noqa: BLE001
            LOGGER.error("LLM call failed: %s", e)
            return LLMResult.fail(_describe_error(e))
        reply = response.content if isinstance(response.content, str) else ""
        if not reply.strip():
            return LLMResult.fail(EMPTY_REPLY_ERROR)
        return LLMResult.ok(reply)
