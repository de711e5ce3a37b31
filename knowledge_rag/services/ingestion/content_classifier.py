"""Content classification and text extraction for incoming documents.

Callers hand the ingestion pipeline a string that is either base64 (binary
files, and sometimes text files) or already-plain text.  This module decides
which, decodes and extracts accordingly, and reports what should be stored
in the document record:

    PDF     -> decode, extract text, store the original base64
    BINARY  -> decode, extract text, store the extracted text
    TEXT    -> base64-looking input is decoded; anything else is plain text

All checks run before anything is persisted, so a classification error
leaves no partial document behind.
"""

from __future__ import annotations

import base64
import binascii
import re
from enum import Enum
from pathlib import PurePath

import structlog
from pydantic import BaseModel, ConfigDict, Field

from knowledge_rag.interfaces.text_extractor import ITextExtractor
from knowledge_rag.utils.errors import (
    CorruptContentError,
    EmptyContentError,
    InvalidEncodingError,
)

logger = structlog.get_logger(logger_name=__name__)

_BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]+=*$")
_WHITESPACE = re.compile(r"\s+")

PDF_CONTENT_TYPE = "application/pdf"

_BINARY_CONTENT_TYPES = frozenset({
    PDF_CONTENT_TYPE,
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/epub+zip",
    "application/rtf",
    "application/zip",
    "application/octet-stream",
})
_BINARY_CONTENT_TYPE_PREFIXES = ("image/", "audio/", "video/")
_BINARY_EXTENSIONS = frozenset({
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".epub",
    ".rtf", ".zip", ".png", ".jpg", ".jpeg", ".gif", ".webp", ".mp3",
    ".wav", ".mp4",
})


class ContentKind(str, Enum):
    PDF = "pdf"
    BINARY = "binary"
    TEXT = "text"


class ClassifiedContent(BaseModel):
    """Result of classifying one document's raw content."""

    model_config = ConfigDict(frozen=True)

    kind: ContentKind
    extracted_text: str = Field(description="Text to chunk and embed.")
    stored_text: str = Field(description="Text to keep in the document record.")
    file_size: int = Field(ge=0, description="Size in bytes of the decoded payload.")


def is_pdf(content_type: str, filename: str) -> bool:
    return content_type.lower() == PDF_CONTENT_TYPE or filename.lower().endswith(".pdf")


def is_binary_content_type(content_type: str, filename: str) -> bool:
    """Return ``True`` when the MIME type or extension names a binary format."""
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime in _BINARY_CONTENT_TYPES or mime.startswith(_BINARY_CONTENT_TYPE_PREFIXES):
        return True
    return PurePath(filename).suffix.lower() in _BINARY_EXTENSIONS


class ContentClassifier:
    """Classifies raw document content and extracts its text.

    Parameters
    ----------
    extractor:
        Capability used to pull text out of decoded binary payloads.
    max_invalid_char_ratio:
        Share of U+FFFD replacement characters tolerated when base64-looking
        text content is decoded.  Above it the content is rejected as
        corrupt.
    """

    def __init__(self, extractor: ITextExtractor, max_invalid_char_ratio: float = 0.1) -> None:
        self._extractor = extractor
        self._max_invalid_char_ratio = max_invalid_char_ratio

    async def classify(self, content: str, content_type: str, filename: str) -> ClassifiedContent:
        """Decode and extract *content* according to its type.

        Raises
        ------
        InvalidEncodingError
            Binary content that is not valid base64.
        CorruptContentError
            Base64-looking text that decodes to mostly invalid UTF-8.
        TextExtractionError
            Propagated from the extractor.
        EmptyContentError
            No text could be extracted.
        """
        if is_pdf(content_type, filename):
            data = self._decode_binary(content, filename)
            text = await self._extractor.extract_text(data, PDF_CONTENT_TYPE, filename)
            result = ClassifiedContent(
                kind=ContentKind.PDF,
                extracted_text=text,
                stored_text=content,
                file_size=len(data),
            )
        elif is_binary_content_type(content_type, filename):
            data = self._decode_binary(content, filename)
            text = await self._extractor.extract_text(data, content_type, filename)
            result = ClassifiedContent(
                kind=ContentKind.BINARY,
                extracted_text=text,
                stored_text=text,
                file_size=len(data),
            )
        else:
            text = self._decode_text(content, filename)
            result = ClassifiedContent(
                kind=ContentKind.TEXT,
                extracted_text=text,
                stored_text=text,
                file_size=len(text.encode("utf-8")),
            )

        if not result.extracted_text.strip():
            logger.warning("empty_content", filename=filename, kind=result.kind.value)
            raise EmptyContentError(f"No text content extracted from {filename}")

        logger.debug(
            "content_classified",
            filename=filename,
            kind=result.kind.value,
            file_size=result.file_size,
            text_length=len(result.extracted_text),
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_binary(content: str, filename: str) -> bytes:
        try:
            return base64.b64decode(_WHITESPACE.sub("", content), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidEncodingError(f"Invalid base64 content for {filename}: {exc}") from exc

    def _decode_text(self, content: str, filename: str) -> str:
        compact = _WHITESPACE.sub("", content)
        # Length must be a multiple of four, so short words such as
        # "Test123" stay plain text.
        if not compact or len(compact) % 4 or not _BASE64_PATTERN.match(compact):
            return content

        try:
            raw = base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError):
            return content

        decoded = raw.decode("utf-8", errors="replace")
        invalid = decoded.count("\ufffd")
        if decoded and invalid / len(decoded) > self._max_invalid_char_ratio:
            logger.warning(
                "corrupt_base64_text",
                filename=filename,
                invalid_chars=invalid,
                decoded_length=len(decoded),
            )
            raise CorruptContentError(
                f"Content of {filename} appears to be corrupted or incorrectly encoded "
                f"({invalid}/{len(decoded)} invalid characters)"
            )
        return decoded
