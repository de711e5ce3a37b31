"""Embedding provider implementations.

Embeddings turn fragment text into fixed-dimension vectors that the memory
store searches by cosine similarity.

    OpenAIEmbeddingProvider  -- text-embedding-3-small (1536 dims) or any
                                OpenAI-compatible endpoint via base_url.
    CachedEmbeddingProvider  -- TTL cache in front of another provider, so
                                repeated texts and queries skip the API.
"""

from knowledge_rag.providers.embedding.cached_embedding_provider import CachedEmbeddingProvider
from knowledge_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["CachedEmbeddingProvider", "OpenAIEmbeddingProvider"]
