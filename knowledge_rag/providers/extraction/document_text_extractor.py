"""Text extraction from binary document formats.

Dispatches on MIME type, falling back to the file extension when the type
is generic:

    PDF   -> PyMuPDF (fitz), page by page
    DOCX  -> python-docx paragraphs
    EPUB  -> ebooklib document items, HTML stripped with BeautifulSoup
    HTML  -> BeautifulSoup
    text  -> UTF-8 decode (JSON, XML, CSV, Markdown and friends)

The parsers are synchronous, so each extraction runs in a worker thread via
``asyncio.to_thread`` to keep the event loop responsive.
"""

from __future__ import annotations

import asyncio
import io
import os
import re
import tempfile
from pathlib import PurePath

import ebooklib
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from bs4 import BeautifulSoup
from docx import Document
from ebooklib import epub

from knowledge_rag.interfaces.text_extractor import ITextExtractor
from knowledge_rag.utils.errors import TextExtractionError

logger = structlog.get_logger(logger_name=__name__)

_MULTI_NEWLINE = re.compile(r"\n{3,}")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")

_DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_FORMAT_BY_TYPE = {
    "application/pdf": "pdf",
    _DOCX_TYPE: "docx",
    "application/epub+zip": "epub",
    "text/html": "html",
    "application/xhtml+xml": "html",
}
_FORMAT_BY_EXTENSION = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".epub": "epub",
    ".html": "html",
    ".htm": "html",
    ".xhtml": "html",
    ".txt": "text",
    ".md": "text",
    ".markdown": "text",
    ".csv": "text",
    ".json": "text",
    ".xml": "text",
    ".yaml": "text",
    ".yml": "text",
}
_TEXT_TYPES = {"application/json", "application/xml", "application/x-yaml"}


def _normalise(text: str) -> str:
    text = _MULTI_SPACE.sub(" ", text)
    text = _MULTI_NEWLINE.sub("\n\n", text)
    return text.strip()


class DocumentTextExtractor(ITextExtractor):
    """Extracts plain text from PDF, DOCX, EPUB, HTML and text-like bytes."""

    async def extract_text(self, data: bytes, content_type: str, filename: str) -> str:
        fmt = self._detect_format(content_type, filename)
        if fmt is None:
            raise TextExtractionError(
                f"Unsupported format for text extraction: {content_type} ({filename})",
                provider_name=self.get_provider_name(),
            )

        parser = getattr(self, f"_extract_{fmt}")
        try:
            text = await asyncio.to_thread(parser, data)
        except TextExtractionError:
            raise
        except Exception as exc:
            logger.error("text_extraction_failed", filename=filename, format=fmt, error=str(exc))
            raise TextExtractionError(
                f"Failed to extract text from {filename}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("text_extracted", filename=filename, format=fmt, chars=len(text))
        return text

    def get_provider_name(self) -> str:
        return "document-extractor"

    # ------------------------------------------------------------------
    # Format detection
    # ------------------------------------------------------------------

    @staticmethod
    def _detect_format(content_type: str, filename: str) -> str | None:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in _FORMAT_BY_TYPE:
            return _FORMAT_BY_TYPE[mime]
        by_extension = _FORMAT_BY_EXTENSION.get(PurePath(filename).suffix.lower())
        if by_extension is not None:
            return by_extension
        if mime.startswith("text/") or mime in _TEXT_TYPES:
            return "text"
        return None

    # ------------------------------------------------------------------
    # Parsers (blocking; run in a worker thread)
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            pages = [page.get_text("text").strip() for page in doc]
        finally:
            doc.close()
        return "\n\n".join(p for p in pages if p)

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        doc = Document(io.BytesIO(data))
        return "\n".join(p.text for p in doc.paragraphs if p.text.strip())

    @staticmethod
    def _extract_epub(data: bytes) -> str:
        # ebooklib reads from a path, so spool the bytes to a temp file.
        fd, path = tempfile.mkstemp(suffix=".epub")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            book = epub.read_epub(path, options={"ignore_ncx": True})
        finally:
            os.unlink(path)

        sections: list[str] = []
        for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT):
            html = item.get_content().decode("utf-8", errors="replace")
            text = _normalise(BeautifulSoup(html, "html.parser").get_text(separator="\n"))
            if text:
                sections.append(text)
        return "\n\n".join(sections)

    @staticmethod
    def _extract_html(data: bytes) -> str:
        soup = BeautifulSoup(data.decode("utf-8", errors="replace"), "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()
        return _normalise(soup.get_text(separator="\n"))

    @staticmethod
    def _extract_text(data: bytes) -> str:
        return data.decode("utf-8", errors="replace")
