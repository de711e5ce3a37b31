"""Utility modules for knowledge-rag.

- **errors** -- Exception hierarchy rooted at KnowledgeRAGError; the
  classification errors abort a document, FragmentProcessingError is
  isolated per fragment.
- **concurrency** -- The injectable ConcurrencyGate that bounds embedding
  calls, a per-key lock map, and a gated ``asyncio.gather``.
- **logging** -- structlog setup with console output in development and
  JSON in production.
"""

from knowledge_rag.utils.concurrency import ConcurrencyGate, KeyedLock, throttled_gather
from knowledge_rag.utils.errors import (
    ConfigurationError,
    ContentClassificationError,
    CorruptContentError,
    DuplicateMemoryError,
    EmptyContentError,
    FragmentProcessingError,
    InvalidEncodingError,
    KnowledgeRAGError,
    RAGError,
    TextExtractionError,
)
from knowledge_rag.utils.logging import agent_context, configure_logging, get_logger

__all__ = [
    "ConcurrencyGate",
    "ConfigurationError",
    "ContentClassificationError",
    "CorruptContentError",
    "DuplicateMemoryError",
    "EmptyContentError",
    "FragmentProcessingError",
    "InvalidEncodingError",
    "KeyedLock",
    "KnowledgeRAGError",
    "RAGError",
    "TextExtractionError",
    "agent_context",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
