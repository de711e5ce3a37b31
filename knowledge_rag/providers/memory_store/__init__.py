"""Memory store implementations.

InMemoryMemoryStore keeps records in process memory and is the default.
ChromaDBMemoryStore persists both tables on disk (CHROMADB_PERSIST_DIR) and
runs cosine-similarity search inside ChromaDB.

Note: ChromaDBMemoryStore is imported directly where needed so that using
the in-memory store does not pay for importing chromadb.
"""

from knowledge_rag.providers.memory_store.in_memory_store import InMemoryMemoryStore

__all__ = ["InMemoryMemoryStore"]
