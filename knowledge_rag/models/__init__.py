"""knowledge-rag domain models -- re-exports all public model classes."""

from __future__ import annotations

from knowledge_rag.models.knowledge import (
    DOCUMENTS_TABLE,
    KNOWLEDGE_TABLE,
    AddKnowledgeOptions,
    AddKnowledgeResult,
    BatchResult,
    ChunkingOptions,
    Content,
    KnowledgeItem,
    KnowledgeResult,
    Memory,
    MemoryType,
    Scope,
    now_ms,
)

__all__ = [
    "DOCUMENTS_TABLE",
    "KNOWLEDGE_TABLE",
    "AddKnowledgeOptions",
    "AddKnowledgeResult",
    "BatchResult",
    "ChunkingOptions",
    "Content",
    "KnowledgeItem",
    "KnowledgeResult",
    "Memory",
    "MemoryType",
    "Scope",
    "now_ms",
]
