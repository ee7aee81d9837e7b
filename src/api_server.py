"""Minimal HTTP API for chunked document analysis, assignment grading, course generation and Q&A chat."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from datetime import datetime, timezone
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlparse

from config import CHUNK_SIZE
from migrations.migrate import migrate_to_latest
from services.assignment_grader import AssignmentGrader
from services.chatbot import Chatbot
from services.chunk_summarizer import ChunkedSummarizer, SummarizerError
from services.course_assistant import CourseAssistant
from services.document_processor import TextExtractor

LOGGER = logging.getLogger("studybot.api")

# One summarization at a time; a second request while one runs is rejected.
_RUN_LOCK = threading.Lock()


class BusyError(RuntimeError):
    """Raised when a summarization is already running."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat()


def _require_str(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' is required.")
    return value


def handle_summarize(body: dict[str, Any]) -> dict[str, Any]:
    text = _require_str(body, "text")
    chunk_prompt = _require_str(body, "chunkPrompt")
    final_prompt = _require_str(body, "finalPrompt")
    chunk_size = body.get("chunkSize", CHUNK_SIZE)
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ValueError("'chunkSize' must be a positive integer.")
    summarizer = ChunkedSummarizer(chunk_size=chunk_size)
    result = summarizer.process_text_in_chunks(text, chunk_prompt, final_prompt)
    run = summarizer.last_run
    return {
        "result": result,
        "chunks": run.total if run else 0,
        "failedChunks": [f.index for f in run.failures] if run else [],
    }


def handle_grade(body: dict[str, Any]) -> dict[str, Any]:
    file_name = _require_str(body, "fileName")
    try:
        data = base64.b64decode(_require_str(body, "contentBase64"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("'contentBase64' is not valid base64.") from e
    text = TextExtractor().extract_text_from_bytes(file_name, data)
    return AssignmentGrader().grade_text(text)


def handle_course_design(body: dict[str, Any]) -> dict[str, Any]:
    return CourseAssistant().design_course(_require_str(body, "topic"), str(body.get("keywords") or ""))


def handle_self_learning(body: dict[str, Any]) -> dict[str, Any]:
    return CourseAssistant().self_learning_guide(_require_str(body, "topic"), str(body.get("keywords") or ""))


def handle_chat(body: dict[str, Any]) -> dict[str, Any]:
    message = body.get("message")
    if not isinstance(message, str):
        raise ValueError("'message' is required.")
    bot = Chatbot()
    reply = bot.send(message)
    return {"reply": reply, "history": bot.history()}


def _run_exclusive(handler: Any, body: dict[str, Any]) -> dict[str, Any]:
    if not _RUN_LOCK.acquire(blocking=False):
        raise BusyError("A document is already being processed. Please wait for it to finish.")
    try:
        return handler(body)
    finally:
        _RUN_LOCK.release()


POST_ROUTES = {
    "/api/summarize": (handle_summarize, True),
    "/api/assignments/grade": (handle_grade, True),
    "/api/course-design": (handle_course_design, False),
    "/api/self-learning": (handle_self_learning, False),
    "/api/chat": (handle_chat, False),
}


class ApiHandler(BaseHTTPRequestHandler):
    server_version = "StudyBotAPI/0.1"

    def _send_json(self, code: int, payload: dict[str, Any]) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET,POST,DELETE,OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()
        self.wfile.write(body)

    def _send_error(self, code: int, e: Exception) -> None:
        self._send_json(code, {"error": str(e), "kind": type(e).__name__})

    def _read_json(self) -> dict[str, Any] | None:
        """Request body as a dict; {} when empty, None when it is not a JSON object."""
        raw_len = self.headers.get("Content-Length")
        try:
            length = int(raw_len or "0")
        except ValueError:
            length = 0
        if length <= 0:
            return {}
        raw = self.rfile.read(length)
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return parsed if isinstance(parsed, dict) else None

    def do_OPTIONS(self) -> None:  # noqa: N802
        self._send_json(HTTPStatus.NO_CONTENT, {})

    def do_GET(self) -> None:  # noqa: N802
        path = urlparse(self.path).path
        if path == "/health":
            self._send_json(HTTPStatus.OK, {"ok": True, "time": _now_iso()})
            return
        if path == "/api/chat/history":
            self._send_json(HTTPStatus.OK, {"items": Chatbot().history()})
            return
        self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})

    def do_DELETE(self) -> None:  # noqa: N802
        path = urlparse(self.path).path
        if path == "/api/chat/history":
            self._send_json(HTTPStatus.OK, {"items": Chatbot().reset()})
            return
        self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})

    def do_POST(self) -> None:  # noqa: N802
        path = urlparse(self.path).path
        route = POST_ROUTES.get(path)
        if route is None:
            self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})
            return
        handler, exclusive = route
        body = self._read_json()
        if body is None:
            self._send_json(HTTPStatus.BAD_REQUEST, {"error": "invalid JSON body"})
            return
        LOGGER.info("POST %s", path)
        try:
            result = _run_exclusive(handler, body) if exclusive else handler(body)
        except BusyError as e:
            self._send_error(HTTPStatus.CONFLICT, e)
            return
        except SummarizerError as e:
            self._send_error(HTTPStatus.BAD_GATEWAY, e)
            return
        except ValueError as e:
            self._send_error(HTTPStatus.BAD_REQUEST, e)
            return
        except Exception as e:
            LOGGER.exception("POST %s failed", path)
            self._send_json(HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "internal_error", "kind": type(e).__name__})
            return
        self._send_json(HTTPStatus.OK, result)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        LOGGER.debug("%s - %s", self.address_string(), format % args)


def run_api_server(host: str = "127.0.0.1", port: int = 8800) -> None:
    migrate_to_latest()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    server = ThreadingHTTPServer((host, port), ApiHandler)
    LOGGER.info("API server listening on http://%s:%s", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    run_api_server()
