"""Unit tests for RetrievalService -- scoped, ranked fragment lookup."""

from __future__ import annotations

import asyncio

import pytest

from knowledge_rag.models.knowledge import KNOWLEDGE_TABLE, Content, Memory, Scope
from knowledge_rag.providers.memory_store.in_memory_store import InMemoryMemoryStore
from knowledge_rag.services.retrieval_service import RetrievalService
from knowledge_rag.utils.concurrency import ConcurrencyGate
from tests.conftest import MockEmbeddingProvider, _hash_to_vector


async def _store_fragment(
    store: InMemoryMemoryStore, frag_id: str, text: str, room_id: str = "room-a"
) -> None:
    await store.create_memory(
        Memory(
            id=frag_id,
            agent_id="agent",
            room_id=room_id,
            world_id="world",
            entity_id="entity",
            content=Content(text=text),
            embedding=_hash_to_vector(text),
            metadata={"type": "fragment", "document_id": "doc-1", "position": 0},
        ),
        KNOWLEDGE_TABLE,
    )


@pytest.fixture
def store() -> InMemoryMemoryStore:
    return InMemoryMemoryStore()


@pytest.fixture
def embedder() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


class TestQuery:
    @pytest.mark.asyncio
    async def test_blank_query_skips_embedding(
        self, embedder: MockEmbeddingProvider, store: InMemoryMemoryStore
    ) -> None:
        service = RetrievalService(embedder, store, ConcurrencyGate(2))

        assert await service.query("") == []
        assert await service.query("   \n") == []
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_exact_text_ranks_first(
        self, embedder: MockEmbeddingProvider, store: InMemoryMemoryStore
    ) -> None:
        await _store_fragment(store, "f-1", "Warehouse parties in Manchester.")
        await _store_fragment(store, "f-2", "Detroit techno pioneers.")
        service = RetrievalService(embedder, store, ConcurrencyGate(2), match_threshold=-1.0)

        results = await service.query("Warehouse parties in Manchester.")

        assert results[0].id == "f-1"
        assert results[0].similarity == pytest.approx(1.0, abs=1e-6)
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)

    @pytest.mark.asyncio
    async def test_scope_restricts_results(
        self, embedder: MockEmbeddingProvider, store: InMemoryMemoryStore
    ) -> None:
        await _store_fragment(store, "in-a", "Shared phrase.", room_id="room-a")
        await _store_fragment(store, "in-b", "Shared phrase.", room_id="room-b")
        service = RetrievalService(embedder, store, ConcurrencyGate(2))

        results = await service.query("Shared phrase.", Scope(room_id="room-a"))

        assert [r.id for r in results] == ["in-a"]
        assert results[0].room_id == "room-a"

    @pytest.mark.asyncio
    async def test_result_limit(self, embedder: MockEmbeddingProvider, store: InMemoryMemoryStore) -> None:
        for i in range(5):
            await _store_fragment(store, f"f-{i}", "Same text.")
        service = RetrievalService(embedder, store, ConcurrencyGate(2), result_limit=3)

        assert len(await service.query("Same text.")) == 3

    @pytest.mark.asyncio
    async def test_query_embedding_waits_for_gate(
        self, embedder: MockEmbeddingProvider, store: InMemoryMemoryStore
    ) -> None:
        gate = ConcurrencyGate(1)
        service = RetrievalService(embedder, store, gate)

        await gate.acquire()
        task = asyncio.create_task(service.query("Anything at all."))
        await asyncio.sleep(0.01)
        assert embedder.calls == []

        gate.release()
        await task
        assert embedder.calls == ["Anything at all."]
        assert gate.in_use == 0
