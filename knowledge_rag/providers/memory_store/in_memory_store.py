"""Process-local memory store backed by dicts and numpy.

Suitable for tests, development and single-process deployments that do not
need persistence across restarts.  Similarity search is an exact cosine
scan over the fragments of a table, vectorised with numpy.
"""

from __future__ import annotations

import uuid

import numpy as np
import structlog

from knowledge_rag.interfaces.memory_store import IMemoryStore
from knowledge_rag.models.knowledge import DOCUMENTS_TABLE, KNOWLEDGE_TABLE, Memory
from knowledge_rag.utils.errors import DuplicateMemoryError, RAGError

logger = structlog.get_logger(logger_name=__name__)


class InMemoryMemoryStore(IMemoryStore):
    """Dict-backed :class:`IMemoryStore`.

    Each table maps record id to :class:`Memory`.  Every method body runs
    without awaiting, so each call is atomic with respect to other
    coroutines on the same event loop.
    """

    def __init__(self, tables: tuple[str, ...] = (DOCUMENTS_TABLE, KNOWLEDGE_TABLE)) -> None:
        self._tables: dict[str, dict[str, Memory]] = {name: {} for name in tables}

    # ------------------------------------------------------------------
    # IMemoryStore implementation
    # ------------------------------------------------------------------

    async def get_memory_by_id(self, memory_id: str) -> Memory | None:
        for table in self._tables.values():
            if memory_id in table:
                return table[memory_id]
        return None

    async def create_memory(self, memory: Memory, table_name: str) -> str:
        table = self._table(table_name)
        if memory.id is None:
            memory = memory.model_copy(update={"id": str(uuid.uuid4())})
        if any(memory.id in t for t in self._tables.values()):
            raise DuplicateMemoryError(memory.id, provider_name=self.get_provider_name())
        table[memory.id] = memory
        return memory.id

    async def update_memory(self, memory: Memory) -> bool:
        if memory.id is None:
            return False
        for table in self._tables.values():
            if memory.id in table:
                table[memory.id] = memory
                return True
        return False

    async def delete_memory(self, memory_id: str) -> None:
        for table in self._tables.values():
            table.pop(memory_id, None)

    async def get_memories(
        self,
        table_name: str,
        agent_id: str | None = None,
        room_id: str | None = None,
        count: int | None = None,
        end: int | None = None,
    ) -> list[Memory]:
        records = [
            m
            for m in self._table(table_name).values()
            if (agent_id is None or m.agent_id == agent_id)
            and (room_id is None or m.room_id == room_id)
            and (end is None or m.created_at < end)
        ]
        records.sort(key=lambda m: m.created_at, reverse=True)
        return records[:count] if count is not None else records

    async def search_memories(
        self,
        table_name: str,
        embedding: list[float],
        agent_id: str | None = None,
        room_id: str | None = None,
        world_id: str | None = None,
        entity_id: str | None = None,
        count: int = 20,
        match_threshold: float = 0.1,
    ) -> list[Memory]:
        candidates = [
            m
            for m in self._table(table_name).values()
            if m.embedding is not None
            and len(m.embedding) == len(embedding)
            and (agent_id is None or m.agent_id == agent_id)
            and (room_id is None or m.room_id == room_id)
            and (world_id is None or m.world_id == world_id)
            and (entity_id is None or m.entity_id == entity_id)
        ]
        if not candidates:
            return []

        query = np.asarray(embedding, dtype=np.float64)
        matrix = np.asarray([m.embedding for m in candidates], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, matrix @ query / norms, 0.0)

        order = np.argsort(-scores, kind="stable")
        results: list[Memory] = []
        for idx in order:
            score = float(scores[idx])
            if score < match_threshold or len(results) >= count:
                break
            results.append(candidates[idx].model_copy(update={"similarity": score}))

        logger.debug(
            "memory_search",
            table=table_name,
            candidates=len(candidates),
            results=len(results),
            top_score=results[0].similarity if results else None,
        )
        return results

    def get_provider_name(self) -> str:
        return "in-memory"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _table(self, table_name: str) -> dict[str, Memory]:
        try:
            return self._tables[table_name]
        except KeyError:
            raise RAGError(
                message=f"Unknown table: {table_name}",
                provider_name=self.get_provider_name(),
            ) from None
