"""Public interface definitions for the external capabilities.

The ingestion pipeline reaches every external service through these
abstract base classes; concrete adapters in ``knowledge_rag/providers/`` are
injected at construction time.

    Interface            ->  Concrete implementations
    ---------------------------------------------------------------
    IEmbeddingProvider   ->  OpenAIEmbeddingProvider, CachedEmbeddingProvider
    IMemoryStore         ->  InMemoryMemoryStore, ChromaDBMemoryStore
    ITextExtractor       ->  DocumentTextExtractor
"""

from knowledge_rag.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_rag.interfaces.memory_store import IMemoryStore
from knowledge_rag.interfaces.text_extractor import ITextExtractor

__all__ = [
    "IEmbeddingProvider",
    "IMemoryStore",
    "ITextExtractor",
]
