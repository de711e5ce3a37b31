"""TTL-cached decorator around another embedding provider.

Re-ingesting a document or repeating a query produces the same texts, so
vectors are cached by a SHA-256 digest of the input.  Backed by
``cachetools.TTLCache`` (500 entries, four hours by default).
"""

from __future__ import annotations

import hashlib

import structlog
from cachetools import TTLCache

from knowledge_rag.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)


def _cache_key(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class CachedEmbeddingProvider(IEmbeddingProvider):
    """Caches vectors from *inner* in an in-memory TTL cache.

    Parameters
    ----------
    inner:
        The provider that actually computes embeddings.
    max_size:
        Maximum number of cached vectors before the least-recently-used
        entry is evicted.
    ttl:
        Time-to-live in seconds for each cached vector.
    """

    def __init__(self, inner: IEmbeddingProvider, max_size: int = 500, ttl: int = 4 * 60 * 60) -> None:
        self._inner = inner
        self._cache: TTLCache[str, list[float]] = TTLCache(maxsize=max_size, ttl=ttl)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        keys = [_cache_key(t) for t in texts]
        results: list[list[float] | None] = [self._cache.get(k) for k in keys]

        missing = [i for i, vector in enumerate(results) if vector is None]
        if missing:
            fresh = await self._inner.embed([texts[i] for i in missing])
            for i, vector in zip(missing, fresh):
                self._cache[keys[i]] = vector
                results[i] = vector

        logger.debug(
            "embedding_cache_lookup",
            hits=len(texts) - len(missing),
            misses=len(missing),
        )
        return [vector for vector in results if vector is not None]

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._inner.get_dimension()

    def get_provider_name(self) -> str:
        return f"cached:{self._inner.get_provider_name()}"

    def is_available(self) -> bool:
        return self._inner.is_available()

    def clear(self) -> None:
        """Drop every cached vector."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
