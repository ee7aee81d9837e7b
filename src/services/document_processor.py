"""
Document text extraction for uploaded course materials and assignments (PDF, DOCX, plain text).
"""

import io
from pathlib import Path
from typing import Any

from docx import Document
from pypdf import PdfReader

from utils.file_utils import file_extension

TEXT_EXTENSIONS = {"txt", "md", "markdown"}
SUPPORTED_EXTENSIONS = {"pdf", "docx"} | TEXT_EXTENSIONS


def _read_bytes(uploaded_file: Any) -> bytes:
    """Read raw bytes from a file-like object."""
    try:
        data = uploaded_file.read()
    except Exception as e:
        raise ValueError(f"Unable to read file: {e!s}") from e

    if not data or len(data) == 0:
        raise ValueError("File is empty and cannot be processed.")
    return data


class PDFProcessor:
    """Extracts text from PDF files."""

    def extract_pages_from_bytes(self, data: bytes) -> list[dict[str, Any]]:
        """
        Extract per-page text from PDF bytes.

        Returns:
            List of {"page": int, "text": str}.
        """
        if not data:
            raise ValueError("File is empty and cannot be processed.")

        try:
            reader = PdfReader(io.BytesIO(data))
        except Exception as e:
            raise ValueError(f"Unable to parse PDF (possibly corrupted): {e!s}") from e

        pages: list[dict[str, Any]] = []
        try:
            for idx, page in enumerate(reader.pages):
                text = (page.extract_text() or "").strip()
                if text:
                    pages.append({"page": idx + 1, "text": text})
        except Exception as e:
            raise ValueError(f"Error extracting page text: {e!s}") from e

        return pages

    def extract_text_from_bytes(self, data: bytes) -> str:
        pages = self.extract_pages_from_bytes(data)
        return "\n".join(p["text"] for p in pages)


class DocxProcessor:
    """Extracts paragraph text from Word (.docx) documents."""

    def extract_text_from_bytes(self, data: bytes) -> str:
        if not data:
            raise ValueError("File is empty and cannot be processed.")
        try:
            document = Document(io.BytesIO(data))
        except Exception as e:
            raise ValueError(f"Unable to parse Word document (check the file format): {e!s}") from e
        return "\n".join(p.text for p in document.paragraphs)


class TextExtractor:
    """Dispatches on file extension to return the plain text of an uploaded file."""

    def __init__(self) -> None:
        self.pdf_processor = PDFProcessor()
        self.docx_processor = DocxProcessor()

    def extract_text_from_bytes(self, file_name: str, data: bytes) -> str:
        """
        Extract plain text from raw file content.

        Args:
            file_name: Original file name; only its extension is used.
            data: File content.

        Returns:
            Extracted text.

        Raises:
            ValueError: If the type is unsupported, the file is empty, or parsing fails.
        """
        ext = file_extension(file_name)
        if ext not in SUPPORTED_EXTENSIONS:
            raise ValueError(f"Unsupported file type: .{ext}")
        if not data:
            raise ValueError("File is empty and cannot be processed.")
        if ext == "pdf":
            return self.pdf_processor.extract_text_from_bytes(data)
        if ext == "docx":
            return self.docx_processor.extract_text_from_bytes(data)
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValueError(f"Text file is not valid UTF-8: {e!s}") from e

    def extract_text(self, uploaded_file: Any) -> str:
        """
        Read an uploaded file and extract its text.

        Args:
            uploaded_file: A file-like object with .name and .read() returning bytes.
        """
        name = str(getattr(uploaded_file, "name", "") or "")
        ext = file_extension(name)
        if ext not in SUPPORTED_EXTENSIONS:
            raise ValueError(f"Unsupported file type: .{ext}")
        return self.extract_text_from_bytes(name, _read_bytes(uploaded_file))

    def extract_text_from_path(self, path: str | Path) -> str:
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as e:
            raise ValueError(f"Unable to read file: {e!s}") from e
        return self.extract_text_from_bytes(p.name, data)
