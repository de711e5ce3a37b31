"""ChromaDB-backed memory store.

Wraps ``chromadb.PersistentClient`` to implement :class:`IMemoryStore`, with
one collection per logical table (documents and knowledge fragments).
Fragments carry their pre-computed embeddings and are searched with cosine
distance; documents are stored alongside a constant placeholder vector
because ChromaDB requires one for every record.

ChromaDB metadata must be flat scalars, so each record stores:

- its full knowledge metadata as a JSON string (``metadata_json``), and
- the scope and lifecycle fields it is filtered on (``agent_id``,
  ``room_id``, ``world_id``, ``entity_id``, ``type``, ``document_id``,
  ``created_at``), omitted when unset.
"""

from __future__ import annotations

import json
import os
from typing import Any

# ChromaDB reads this before its telemetry client is created.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from knowledge_rag.interfaces.memory_store import IMemoryStore
from knowledge_rag.models.knowledge import DOCUMENTS_TABLE, KNOWLEDGE_TABLE, Content, Memory
from knowledge_rag.utils.errors import DuplicateMemoryError, RAGError

logger = structlog.get_logger(logger_name=__name__)

_PLACEHOLDER_VECTOR = [1.0]
_SCOPE_FIELDS = ("agent_id", "room_id", "world_id", "entity_id")


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Keeps ChromaDB from loading its default ONNX model.

    Every record is written with an explicit vector, so this is never
    invoked.  It has no settings, so its persisted config is empty.
    """

    def __init__(self) -> None:
        pass

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("knowledge-rag always supplies pre-computed embeddings")

    @staticmethod
    def name() -> str:
        return "noop_precomputed"

    def get_config(self) -> dict[str, Any]:
        return {}

    @staticmethod
    def build_from_config(config: dict[str, Any]) -> _NoopEmbeddingFunction:
        return _NoopEmbeddingFunction()


def _where(**conditions: Any) -> dict[str, Any] | None:
    clauses = [{key: value} for key, value in conditions.items() if value is not None]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaDBMemoryStore(IMemoryStore):
    """:class:`IMemoryStore` persisted in two ChromaDB collections.

    Parameters
    ----------
    persist_directory:
        On-disk location of the ChromaDB database.
    documents_collection, knowledge_collection:
        Collection names backing the ``documents`` and ``knowledge`` tables.
    client:
        Optional pre-built client (e.g. ``chromadb.EphemeralClient()`` in
        tests); overrides *persist_directory*.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        documents_collection: str = "knowledge_documents",
        knowledge_collection: str = "knowledge_fragments",
        client: Any = None,
    ) -> None:
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collections = {
            DOCUMENTS_TABLE: self._open_collection(documents_collection),
            KNOWLEDGE_TABLE: self._open_collection(knowledge_collection),
        }
        logger.info(
            "chromadb_store_ready",
            persist_directory=persist_directory if client is None else None,
            documents=self._collections[DOCUMENTS_TABLE].count(),
            fragments=self._collections[KNOWLEDGE_TABLE].count(),
        )

    def _open_collection(self, name: str) -> Any:
        # Collections created by another ChromaDB version may carry a
        # persisted embedding function that conflicts with the no-op one.
        try:
            return self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            return self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IMemoryStore implementation
    # ------------------------------------------------------------------

    async def get_memory_by_id(self, memory_id: str) -> Memory | None:
        try:
            for table in self._collections:
                found = self._get(table, ids=[memory_id])
                if found:
                    return found[0]
            return None
        except Exception as exc:
            raise self._error("get_memory_by_id", exc) from exc

    async def create_memory(self, memory: Memory, table_name: str) -> str:
        collection = self._collection(table_name)
        if memory.id is None:
            raise RAGError(
                message="ChromaDB records require an explicit id",
                provider_name=self.get_provider_name(),
            )
        try:
            for other in self._collections.values():
                if other.get(ids=[memory.id], include=["metadatas"])["ids"]:
                    raise DuplicateMemoryError(memory.id, provider_name=self.get_provider_name())
            collection.add(**self._to_record(memory, table_name))
        except DuplicateMemoryError:
            raise
        except Exception as exc:
            raise self._error("create_memory", exc) from exc
        return memory.id

    async def update_memory(self, memory: Memory) -> bool:
        if memory.id is None:
            return False
        try:
            for table, collection in self._collections.items():
                if collection.get(ids=[memory.id], include=["metadatas"])["ids"]:
                    collection.upsert(**self._to_record(memory, table))
                    return True
            return False
        except Exception as exc:
            raise self._error("update_memory", exc) from exc

    async def delete_memory(self, memory_id: str) -> None:
        try:
            for collection in self._collections.values():
                collection.delete(ids=[memory_id])
        except Exception as exc:
            raise self._error("delete_memory", exc) from exc

    async def get_memories(
        self,
        table_name: str,
        agent_id: str | None = None,
        room_id: str | None = None,
        count: int | None = None,
        end: int | None = None,
    ) -> list[Memory]:
        self._collection(table_name)
        where = _where(
            agent_id=agent_id,
            room_id=room_id,
            created_at={"$lt": end} if end is not None else None,
        )
        try:
            records = self._get(table_name, where=where)
        except Exception as exc:
            raise self._error("get_memories", exc) from exc
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
        collection = self._collection(table_name)
        try:
            total = collection.count()
            if total == 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [embedding],
                "n_results": min(count, total),
                "include": ["documents", "metadatas", "distances", "embeddings"],
            }
            where = _where(
                agent_id=agent_id, room_id=room_id, world_id=world_id, entity_id=entity_id
            )
            if where:
                kwargs["where"] = where
            result = collection.query(**kwargs)
        except Exception as exc:
            raise self._error("search_memories", exc) from exc

        ids = result["ids"][0] if result["ids"] else []
        documents = result["documents"][0] if result.get("documents") else [""] * len(ids)
        metadatas = result["metadatas"][0] if result.get("metadatas") else [{}] * len(ids)
        distances = result["distances"][0] if result.get("distances") else [1.0] * len(ids)
        embeddings = result.get("embeddings")
        vectors = embeddings[0] if embeddings is not None else [None] * len(ids)

        memories: list[Memory] = []
        for memory_id, text, meta, distance, vector in zip(
            ids, documents, metadatas, distances, vectors, strict=True
        ):
            similarity = 1.0 - float(distance)
            if similarity < match_threshold:
                continue
            memory = self._from_record(memory_id, text, meta, vector, table_name)
            memories.append(memory.model_copy(update={"similarity": similarity}))

        memories.sort(key=lambda m: m.similarity or 0.0, reverse=True)
        logger.debug(
            "chromadb_search",
            table=table_name,
            raw_results=len(ids),
            results=len(memories),
        )
        return memories

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Record mapping
    # ------------------------------------------------------------------

    def _collection(self, table_name: str) -> Any:
        try:
            return self._collections[table_name]
        except KeyError:
            raise RAGError(
                message=f"Unknown table: {table_name}",
                provider_name=self.get_provider_name(),
            ) from None

    def _get(self, table_name: str, **kwargs: Any) -> list[Memory]:
        include = ["documents", "metadatas"]
        if table_name == KNOWLEDGE_TABLE:
            include.append("embeddings")
        result = self._collection(table_name).get(include=include, **kwargs)

        ids = result["ids"] or []
        documents = result.get("documents") or [""] * len(ids)
        metadatas = result.get("metadatas") or [{}] * len(ids)
        embeddings = result.get("embeddings")
        vectors = embeddings if embeddings is not None else [None] * len(ids)
        return [
            self._from_record(memory_id, text, meta, vector, table_name)
            for memory_id, text, meta, vector in zip(ids, documents, metadatas, vectors, strict=True)
        ]

    @staticmethod
    def _to_record(memory: Memory, table_name: str) -> dict[str, Any]:
        flat: dict[str, Any] = {
            "metadata_json": json.dumps(memory.metadata, default=str),
            "created_at": memory.created_at,
        }
        for field in _SCOPE_FIELDS:
            value = getattr(memory, field)
            if value is not None:
                flat[field] = value
        if memory.memory_type is not None:
            flat["type"] = memory.memory_type.value
        if memory.document_id is not None:
            flat["document_id"] = memory.document_id

        if table_name == KNOWLEDGE_TABLE and memory.embedding is not None:
            vector = memory.embedding
        else:
            vector = _PLACEHOLDER_VECTOR
        return {
            "ids": [memory.id],
            "documents": [memory.content.text],
            "metadatas": [flat],
            "embeddings": [vector],
        }

    @staticmethod
    def _from_record(
        memory_id: str,
        text: str | None,
        meta: dict[str, Any] | None,
        vector: Any,
        table_name: str,
    ) -> Memory:
        meta = meta or {}
        embedding = None
        if table_name == KNOWLEDGE_TABLE and vector is not None:
            embedding = [float(x) for x in vector]
        return Memory(
            id=memory_id,
            agent_id=meta.get("agent_id", ""),
            room_id=meta.get("room_id"),
            world_id=meta.get("world_id"),
            entity_id=meta.get("entity_id"),
            content=Content(text=text or ""),
            embedding=embedding,
            metadata=json.loads(meta.get("metadata_json") or "{}"),
            created_at=int(meta.get("created_at", 0)),
        )

    def _error(self, operation: str, exc: Exception) -> RAGError:
        logger.error("chromadb_operation_failed", operation=operation, error=str(exc))
        return RAGError(
            message=f"ChromaDB {operation} failed: {exc}",
            provider_name=self.get_provider_name(),
        )
