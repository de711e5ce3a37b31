"""Abstract base class for knowledge persistence.

Defines the contract for storing document and fragment records and running
vector similarity search over fragments.  The ingestion pipeline owns the
creation *sequence* (document before fragments); the store owns storage and
query semantics.

Two logical tables are used: ``documents`` and ``knowledge`` (fragments).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from knowledge_rag.models.knowledge import Memory


# Concrete implementations (knowledge_rag/providers/memory_store/):
#   InMemoryMemoryStore  -- dict-backed, numpy cosine similarity
#   ChromaDBMemoryStore  -- one ChromaDB collection per table
class IMemoryStore(ABC):
    """Contract for the persistence capability used by the knowledge pipeline.

    All methods are async so network-backed stores never block the event
    loop.
    """

    @abstractmethod
    async def get_memory_by_id(self, memory_id: str) -> Memory | None:
        """Return the record with *memory_id* from any table, or ``None``."""

    @abstractmethod
    async def create_memory(self, memory: Memory, table_name: str) -> str:
        """Persist a new record in *table_name* and return its id.

        Raises
        ------
        knowledge_rag.utils.errors.DuplicateMemoryError
            If a record with the same id already exists.
        knowledge_rag.utils.errors.RAGError
            If the write fails.
        """

    @abstractmethod
    async def update_memory(self, memory: Memory) -> bool:
        """Replace an existing record in place.

        Returns
        -------
        bool
            ``True`` if the record existed and was updated.
        """

    @abstractmethod
    async def delete_memory(self, memory_id: str) -> None:
        """Delete a record by id (no-op if absent)."""

    @abstractmethod
    async def get_memories(
        self,
        table_name: str,
        agent_id: str | None = None,
        room_id: str | None = None,
        count: int | None = None,
        end: int | None = None,
    ) -> list[Memory]:
        """List records of a table, newest first.

        Parameters
        ----------
        table_name:
            ``"documents"`` or ``"knowledge"``.
        agent_id, room_id:
            Optional equality filters.
        count:
            Maximum number of records to return.
        end:
            Only records created strictly before this epoch-ms timestamp.
        """

    @abstractmethod
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
        """Vector similarity search restricted to the given agent and scope.

        Every filter left as ``None`` matches all records.

        Returns
        -------
        list[Memory]
            At most *count* records whose cosine similarity is at least
            *match_threshold*, ordered by descending similarity, each with
            ``similarity`` populated.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""
