"""Text extraction from binary documents (PDF, DOCX, EPUB, HTML)."""

from knowledge_rag.providers.extraction.document_text_extractor import DocumentTextExtractor

__all__ = ["DocumentTextExtractor"]
