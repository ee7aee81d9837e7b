"""Assignment grading: extract a submission's text and grade it through the chunked pipeline."""

from __future__ import annotations

import logging
from typing import Any

from services.chunk_summarizer import ChunkedSummarizer, ProgressCallback
from services.document_processor import TextExtractor

LOGGER = logging.getLogger("studybot.grader")

GRADING_CHUNK_PROMPT = (
    "You are an experienced teaching assistant grading a student assignment. "
    "You will receive one excerpt of the submission. Note its main arguments, the quality of "
    "reasoning and evidence, errors or gaps, and anything done especially well. "
    "Reply with concise bullet points in plain text."
)

GRADING_FINAL_PROMPT = """You are an experienced teaching assistant grading a student assignment.
You will receive notes taken on each part of the submission. Combine them into one overall assessment.

You must output a single valid JSON object only, without markdown code fences or any text outside the JSON:
{
  "score": "A score out of 100, e.g. '85/100'.",
  "comments": "Detailed feedback in Markdown covering strengths, areas for improvement and an overall evaluation."
}"""

EMPTY_GRADE: dict[str, str] = {"score": "", "comments": ""}


def _validate_grade(obj: Any) -> dict[str, str]:
    """Normalize the synthesis result to {"score": str, "comments": str}."""
    if not isinstance(obj, dict):
        return EMPTY_GRADE.copy()
    score = obj.get("score")
    comments = obj.get("comments")
    return {
        "score": str(score).strip() if score is not None else "",
        "comments": str(comments).strip() if comments is not None else "",
    }


class AssignmentGrader:
    """Grades uploaded assignments (PDF, DOCX, TXT, Markdown)."""

    def __init__(
        self,
        summarizer: ChunkedSummarizer | None = None,
        extractor: TextExtractor | None = None,
    ) -> None:
        self._summarizer = summarizer if summarizer is not None else ChunkedSummarizer()
        self._extractor = extractor if extractor is not None else TextExtractor()

    def grade_text(self, text: str, on_progress: ProgressCallback | None = None) -> dict[str, str]:
        """
        Grade already-extracted submission text.

        Raises:
            ValueError: If the text is blank.
            SummarizerError: If the chunked pipeline fails.
        """
        if not text.strip():
            raise ValueError("The assignment contains no readable text.")
        result = self._summarizer.process_text_in_chunks(
            text, GRADING_CHUNK_PROMPT, GRADING_FINAL_PROMPT, on_progress
        )
        return _validate_grade(result)

    def grade(self, uploaded_file: Any, on_progress: ProgressCallback | None = None) -> dict[str, str]:
        """
        Extract the text of an uploaded file and grade it.

        Args:
            uploaded_file: File-like object with .name and .read().
            on_progress: Called as (completed, total) after each chunk.

        Returns:
            {"score": str, "comments": str}.
        """
        text = self._extractor.extract_text(uploaded_file)
        LOGGER.info("Grading %s (%d chars)", getattr(uploaded_file, "name", "?"), len(text))
        return self.grade_text(text, on_progress)
