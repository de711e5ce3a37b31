"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations may wrap the OpenAI embeddings API, an OpenAI-compatible
endpoint, or a local model.  The ingestion orchestrator and the retrieval
gateway only ever talk to this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations (knowledge_rag/providers/embedding/):
#   OpenAIEmbeddingProvider  -- text-embedding-3-small or any compatible model
#   CachedEmbeddingProvider  -- TTL cache decorator around another provider
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the knowledge pipeline."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        knowledge_rag.utils.errors.RAGError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Constant for the lifetime of the provider; fragments whose vector
        length differs are rejected by the orchestrator.  ``0`` means the
        size is unknown and is not checked.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
