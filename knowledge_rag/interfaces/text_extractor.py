"""Abstract base class for binary-document text extraction.

The content classifier hands decoded file bytes to an ``ITextExtractor``
whenever a document is a PDF or another binary format.  Extraction is the
only place format-specific parsing libraries are touched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: DocumentTextExtractor
# (knowledge_rag/providers/extraction/document_text_extractor.py)
class ITextExtractor(ABC):
    """Contract for turning binary document bytes into plain text."""

    @abstractmethod
    async def extract_text(self, data: bytes, content_type: str, filename: str) -> str:
        """Extract the readable text from *data*.

        Parameters
        ----------
        data:
            Raw file bytes (already base64-decoded).
        content_type:
            MIME type reported by the uploader.
        filename:
            Original filename; its extension is used when the content type
            is generic (``application/octet-stream``).

        Returns
        -------
        str
            The extracted text.  May be empty when the document has no text
            layer; the caller decides whether that is an error.

        Raises
        ------
        knowledge_rag.utils.errors.TextExtractionError
            If the format is unsupported or the bytes cannot be parsed.
        """
