"""
Chunked long-document analysis: split text into fixed-size chunks, analyze each chunk
with the LLM one at a time, then synthesize the partial analyses into one JSON result.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, Sequence

from config import CHUNK_SEPARATOR, CHUNK_SIZE
from services.llm_service import LLMClient, LLMResult, parse_json_reply
from utils.metrics import log_metric

LOGGER = logging.getLogger("studybot.summarizer")

CHUNK_USER_TEMPLATE = "Please analyze the following text excerpt:\n\n{chunk}"
FINAL_USER_TEMPLATE = (
    "Based on the key points below, extracted from each part of the original document, "
    "produce the final consolidated analysis:\n\n{combined}"
)

ProgressCallback = Callable[[int, int], None]


class ChatClient(Protocol):
    def chat(self, messages: Sequence[dict[str, str]]) -> LLMResult: ...


class SummarizerError(RuntimeError):
    """Base class for fatal outcomes of a chunked summarization run."""


class AllChunksFailedError(SummarizerError):
    """No chunk produced an analysis, so there is nothing to synthesize."""


class ReduceCallError(SummarizerError):
    """The final synthesis LLM call itself failed."""


class ReduceParseError(SummarizerError):
    """The final synthesis call succeeded but its reply was not valid JSON."""


class SummaryCancelledError(SummarizerError):
    """The caller cancelled the run."""


class RunState(str, Enum):
    IDLE = "idle"
    CHUNKING = "chunking"
    MAPPING = "mapping"
    REDUCE_PENDING = "reduce_pending"
    REDUCING = "reducing"
    DONE = "done"
    ALL_CHUNKS_FAILED = "all_chunks_failed"
    REDUCE_FAILED = "reduce_failed"
    CANCELLED = "cancelled"


_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {RunState.CHUNKING},
    RunState.CHUNKING: {RunState.MAPPING, RunState.ALL_CHUNKS_FAILED},
    RunState.MAPPING: {RunState.REDUCE_PENDING, RunState.ALL_CHUNKS_FAILED, RunState.CANCELLED},
    RunState.REDUCE_PENDING: {RunState.REDUCING, RunState.CANCELLED},
    RunState.REDUCING: {RunState.DONE, RunState.REDUCE_FAILED},
}


@dataclass(frozen=True)
class Chunk:
    """Positional slice of the source text."""

    index: int
    text: str
    total: int


@dataclass(frozen=True)
class ChunkResult:
    index: int
    text: str


@dataclass(frozen=True)
class ChunkFailure:
    index: int
    error: str


@dataclass
class PipelineRun:
    """Transient state of one summarization call."""

    text: str
    chunk_size: int
    state: RunState = RunState.IDLE
    chunks: list[Chunk] = field(default_factory=list)
    results: list[ChunkResult] = field(default_factory=list)
    failures: list[ChunkFailure] = field(default_factory=list)
    completed: int = 0

    @property
    def total(self) -> int:
        return len(self.chunks)

    def advance(self, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"invalid run transition {self.state.value} -> {new_state.value}")
        self.state = new_state


def split_text_into_chunks(text: str, size: int = CHUNK_SIZE) -> list[Chunk]:
    """
    Split *text* into consecutive chunks of *size* characters; the last one may be shorter.

    Raises:
        ValueError: If size is not a positive integer.
    """
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise ValueError(f"Chunk size must be a positive integer, got {size!r}.")
    starts = range(0, len(text), size)
    total = len(starts)
    return [Chunk(index=i, text=text[start:start + size], total=total) for i, start in enumerate(starts)]


def combine_chunk_results(results: Sequence[ChunkResult]) -> str:
    return CHUNK_SEPARATOR.join(r.text for r in results)


class ChunkedSummarizer:
    """Map an analysis prompt over text chunks, then reduce the analyses with a synthesis prompt."""

    def __init__(self, llm: ChatClient | None = None, chunk_size: int = CHUNK_SIZE) -> None:
        self._llm = llm if llm is not None else LLMClient()
        self.chunk_size = chunk_size
        self.last_run: PipelineRun | None = None

    def process_text_in_chunks(
        self,
        full_text: str,
        chunk_system_prompt: str,
        final_system_prompt: str,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Any:
        """
        Run the full chunk-analyze-synthesize pipeline over *full_text*.

        Args:
            full_text: Text to analyze.
            chunk_system_prompt: System prompt for each per-chunk analysis.
            final_system_prompt: System prompt for the synthesis call; it should ask for JSON.
            on_progress: Called as (completed, total) after every chunk, successful or not.
            cancel_event: When set, the run stops before its next LLM call.

        Returns:
            The parsed JSON value of the synthesis reply.

        Raises:
            ValueError: If the configured chunk size is invalid.
            AllChunksFailedError: No chunk could be analyzed (including empty input).
            ReduceCallError: The synthesis call failed.
            ReduceParseError: The synthesis reply was not valid JSON.
            SummaryCancelledError: cancel_event was set during the run.
        """
        run = PipelineRun(text=full_text, chunk_size=self.chunk_size)
        self.last_run = run
        started = time.perf_counter()
        try:
            return self._execute(run, chunk_system_prompt, final_system_prompt, on_progress, cancel_event)
        finally:
            log_metric(
                "chunk_summary",
                time.perf_counter() - started,
                chunks=run.total,
                succeeded=len(run.results),
                failed=len(run.failures),
                outcome=run.state.value,
            )

    def _execute(
        self,
        run: PipelineRun,
        chunk_system_prompt: str,
        final_system_prompt: str,
        on_progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> Any:
        run.advance(RunState.CHUNKING)
        run.chunks = split_text_into_chunks(run.text, run.chunk_size)
        LOGGER.info("Summarizing %d chars in %d chunk(s)", len(run.text), run.total)

        if run.chunks:
            run.advance(RunState.MAPPING)
        for chunk in run.chunks:
            self._check_cancelled(run, cancel_event)
            self._analyze_chunk(run, chunk, chunk_system_prompt)
            run.completed += 1
            if on_progress:
                on_progress(run.completed, run.total)

        if not run.results:
            run.advance(RunState.ALL_CHUNKS_FAILED)
            LOGGER.error("All %d chunk(s) failed", run.total)
            raise AllChunksFailedError("None of the text chunks could be processed.")

        run.advance(RunState.REDUCE_PENDING)
        self._check_cancelled(run, cancel_event)
        return self._synthesize(run, final_system_prompt)

    def _check_cancelled(self, run: PipelineRun, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            run.advance(RunState.CANCELLED)
            LOGGER.info("Summarization cancelled after %d/%d chunk(s)", run.completed, run.total)
            raise SummaryCancelledError("Summarization was cancelled.")

    def _analyze_chunk(self, run: PipelineRun, chunk: Chunk, chunk_system_prompt: str) -> None:
        response = self._llm.chat([
            {"role": "system", "content": chunk_system_prompt},
            {"role": "user", "content": CHUNK_USER_TEMPLATE.format(chunk=chunk.text)},
        ])
        if response.success:
            run.results.append(ChunkResult(index=chunk.index, text=response.data))
        else:
            LOGGER.warning("Chunk %d/%d failed: %s", chunk.index + 1, chunk.total, response.error)
            run.failures.append(ChunkFailure(index=chunk.index, error=response.error))

    def _synthesize(self, run: PipelineRun, final_system_prompt: str) -> Any:
        run.advance(RunState.REDUCING)
        combined = combine_chunk_results(run.results)
        response = self._llm.chat([
            {"role": "system", "content": final_system_prompt},
            {"role": "user", "content": FINAL_USER_TEMPLATE.format(combined=combined)},
        ])
        if not response.success:
            run.advance(RunState.REDUCE_FAILED)
            LOGGER.error("Final synthesis call failed: %s", response.error)
            raise ReduceCallError(f"Final synthesis failed: {response.error}")
        try:
            result = parse_json_reply(response.data)
        except json.JSONDecodeError as e:
            run.advance(RunState.REDUCE_FAILED)
            LOGGER.error("Could not parse final synthesis reply: %s", e)
            raise ReduceParseError(
                "The AI's final synthesis reply was not valid JSON and could not be parsed."
            ) from e
        run.advance(RunState.DONE)
        LOGGER.info("Summarized %d/%d chunk(s)", len(run.results), run.total)
        return result


def process_text_in_chunks(
    full_text: str,
    chunk_system_prompt: str,
    final_system_prompt: str,
    on_progress: ProgressCallback | None = None,
    llm: ChatClient | None = None,
    chunk_size: int = CHUNK_SIZE,
) -> Any:
    """Run one chunked summarization with a fresh ChunkedSummarizer."""
    summarizer = ChunkedSummarizer(llm=llm, chunk_size=chunk_size)
    return summarizer.process_text_in_chunks(full_text, chunk_system_prompt, final_system_prompt, on_progress)
