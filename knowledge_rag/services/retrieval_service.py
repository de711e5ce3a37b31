"""Scoped similarity search over stored knowledge fragments.

The query text is embedded under the shared concurrency gate, then the
memory store is searched within the caller's (room, world, entity) scope.
Blank queries return nothing without touching the embedding provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from knowledge_rag.models.knowledge import KNOWLEDGE_TABLE, KnowledgeResult, Scope

if TYPE_CHECKING:
    from knowledge_rag.interfaces.embedding_provider import IEmbeddingProvider
    from knowledge_rag.interfaces.memory_store import IMemoryStore
    from knowledge_rag.utils.concurrency import ConcurrencyGate

logger = structlog.get_logger(logger_name=__name__)


class RetrievalService:
    """Answers knowledge queries with ranked fragments.

    Parameters
    ----------
    embedding_provider:
        Embeds query text; must be the provider fragments were embedded with.
    memory_store:
        Holds the ``knowledge`` table searched by similarity.
    gate:
        Concurrency gate shared with ingestion so query embeddings count
        against the same bound.
    result_limit:
        Maximum number of fragments returned per query.
    match_threshold:
        Minimum cosine similarity for a fragment to be returned.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        memory_store: IMemoryStore,
        gate: ConcurrencyGate,
        result_limit: int = 20,
        match_threshold: float = 0.1,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._memory_store = memory_store
        self._gate = gate
        self._result_limit = result_limit
        self._match_threshold = match_threshold

    async def query(
        self, text: str, scope: Scope | None = None, agent_id: str | None = None
    ) -> list[KnowledgeResult]:
        """Return fragments most similar to *text* within *scope*.

        When *agent_id* is given only that agent's fragments are searched.

        Returns
        -------
        list[KnowledgeResult]
            At most ``result_limit`` results, highest similarity first.
            Empty for blank *text*.
        """
        if not text or not text.strip():
            logger.debug("empty_knowledge_query")
            return []

        scope = scope or Scope()
        async with self._gate:
            embedding = await self._embedding_provider.embed_single(text)

        memories = await self._memory_store.search_memories(
            table_name=KNOWLEDGE_TABLE,
            embedding=embedding,
            agent_id=agent_id,
            room_id=scope.room_id,
            world_id=scope.world_id,
            entity_id=scope.entity_id,
            count=self._result_limit,
            match_threshold=self._match_threshold,
        )

        results = [
            KnowledgeResult(
                id=memory.id,
                content=memory.content,
                similarity=memory.similarity,
                metadata=memory.metadata,
                room_id=memory.room_id,
                world_id=memory.world_id,
                entity_id=memory.entity_id,
            )
            for memory in memories
            if memory.id
        ]
        results.sort(key=lambda r: r.similarity if r.similarity is not None else 0.0, reverse=True)

        logger.info(
            "knowledge_query",
            agent_id=agent_id,
            query_length=len(text),
            room_id=scope.room_id,
            results=len(results),
            top_score=results[0].similarity if results else None,
        )
        return results
