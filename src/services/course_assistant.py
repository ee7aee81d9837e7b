"""
Course design and self-learning guide generation from a topic and keywords.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from services.chunk_summarizer import ChatClient
from services.llm_service import LLMClient, parse_json_reply

LOGGER = logging.getLogger("studybot.course")

COURSE_DESIGN_PROMPT = """You are a top instructional designer who builds university courses for lecturers.
Using the course topic and keywords provided, produce detailed teaching material.

You must output a single valid JSON object only, without markdown code fences or any text outside the JSON:
{
  "syllabus": "A detailed syllabus broken into chapters, in Markdown.",
  "keyPoints": "Analysis of the course's key and difficult points, in Markdown.",
  "exercises": "3-5 suggested after-class exercises, in Markdown."
}"""

SELF_LEARNING_PROMPT = """You are a top learning expert. Using the course topic and keywords provided, write a self-study guide.

You must output a single valid JSON object only, without markdown code fences or any text outside the JSON:
{
  "knowledgePoints": "Summary of the core knowledge points, in Markdown.",
  "onlineCourses": "Recommended high-quality online courses (e.g. Coursera, edX), in Markdown.",
  "websites": "Recommended learning websites and resources, in Markdown."
}"""

COURSE_DESIGN_FIELDS = ("syllabus", "keyPoints", "exercises")
SELF_LEARNING_FIELDS = ("knowledgePoints", "onlineCourses", "websites")

PARSE_ERROR = "The AI's reply was not in the expected format and could not be parsed. Please try again."


def _user_message(topic: str, keywords: str) -> str:
    return f"Course topic: {topic.strip()}\nKeywords: {keywords.strip()}"


def _pick_fields(obj: dict[str, Any], fields: tuple[str, ...]) -> dict[str, str]:
    return {name: str(obj.get(name) or "").strip() for name in fields}


class CourseAssistant:
    """Single-call generators for teaching material and self-study guides."""

    def __init__(self, llm: ChatClient | None = None) -> None:
        self._llm = llm if llm is not None else LLMClient()

    def _generate(self, system_prompt: str, topic: str, keywords: str, fields: tuple[str, ...]) -> dict[str, str]:
        if not topic.strip():
            raise ValueError("Please provide a course topic.")
        response = self._llm.chat([
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": _user_message(topic, keywords)},
        ])
        if not response.success:
            raise ValueError(response.error)
        try:
            obj = parse_json_reply(response.data)
        except json.JSONDecodeError as e:
            LOGGER.error("Failed to parse LLM response: %s", e)
            raise ValueError(PARSE_ERROR) from e
        if not isinstance(obj, dict):
            raise ValueError(PARSE_ERROR)
        return _pick_fields(obj, fields)

    def design_course(self, topic: str, keywords: str = "") -> dict[str, str]:
        """
        Generate a syllabus, key-point analysis and exercise suggestions.

        Returns:
            {"syllabus", "keyPoints", "exercises"}, each a Markdown string.

        Raises:
            ValueError: If the topic is blank, the LLM call fails, or the reply is not a JSON object.
        """
        return self._generate(COURSE_DESIGN_PROMPT, topic, keywords, COURSE_DESIGN_FIELDS)

    def self_learning_guide(self, topic: str, keywords: str = "") -> dict[str, str]:
        """Generate {"knowledgePoints", "onlineCourses", "websites"} for self-study."""
        return self._generate(SELF_LEARNING_PROMPT, topic, keywords, SELF_LEARNING_FIELDS)
