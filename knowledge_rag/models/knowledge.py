"""Knowledge-base data models.

Pydantic v2 models for the records the ingestion pipeline persists
(documents and fragments, both stored as :class:`Memory`), the inputs and
outputs of the public service operations, and retrieval results.  All
models are frozen; derived records are produced with ``model_copy``.

Two logical tables hold the records:

    documents  -- one Memory per ingested document (metadata.type == "document")
    knowledge  -- one Memory per fragment, carrying its embedding
                  (metadata.type == "fragment", metadata.document_id -> parent)
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

DOCUMENTS_TABLE = "documents"
KNOWLEDGE_TABLE = "knowledge"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class MemoryType(str, Enum):
    """Kind of a stored knowledge record, kept in ``metadata["type"]``."""

    DOCUMENT = "document"
    FRAGMENT = "fragment"


class Content(BaseModel):
    """Textual payload of a record."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(default="", description="Record text (base64 for stored PDFs).")


class Scope(BaseModel):
    """The (room, world, entity) triple restricting visibility of records.

    Every field is optional at query time; an absent field does not filter.
    """

    model_config = ConfigDict(frozen=True)

    room_id: str | None = None
    world_id: str | None = None
    entity_id: str | None = None


# ---------------------------------------------------------------------------
# Memory -- the persisted record for both documents and fragments.
# ---------------------------------------------------------------------------
class Memory(BaseModel):
    """A persisted knowledge record.

    Documents and fragments share this shape; ``metadata["type"]`` tells
    them apart.  ``similarity`` is only populated on records returned from
    a similarity search.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Record id (UUID-shaped).")
    agent_id: str = Field(description="Agent that owns the record.")
    room_id: str | None = None
    world_id: str | None = None
    entity_id: str | None = None
    content: Content = Field(default_factory=Content)
    embedding: list[float] | None = Field(
        default=None, description="Fixed-dimension vector; set on fragments only."
    )
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(default_factory=now_ms, description="Epoch milliseconds.")
    similarity: float | None = Field(
        default=None, description="Cosine similarity; set on search results only."
    )

    @property
    def memory_type(self) -> MemoryType | None:
        raw = self.metadata.get("type")
        try:
            return MemoryType(raw) if raw is not None else None
        except ValueError:
            return None

    @property
    def document_id(self) -> str | None:
        value = self.metadata.get("document_id")
        return str(value) if value is not None else None

    @property
    def scope(self) -> Scope:
        return Scope(room_id=self.room_id, world_id=self.world_id, entity_id=self.entity_id)


# ---------------------------------------------------------------------------
# Service inputs
# ---------------------------------------------------------------------------
class AddKnowledgeOptions(BaseModel):
    """Input to :meth:`KnowledgeService.add_knowledge`.

    ``content`` is base64 for binary files and either base64 or plain text
    for text files; the content classifier decides which.
    """

    model_config = ConfigDict(frozen=True)

    client_document_id: str = Field(description="Caller-supplied stable document id.")
    content_type: str = Field(description="MIME type reported by the caller.")
    original_filename: str = Field(description="Filename used for type detection and metadata.")
    content: str = Field(description="Raw content: base64 or plain text.")
    room_id: str | None = None
    world_id: str | None = None
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Extra metadata merged into the document record."
    )


class KnowledgeItem(BaseModel):
    """Already-textual knowledge (character knowledge, direct text additions)."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: Content
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChunkingOptions(BaseModel):
    """Token budget for splitting a document into fragments."""

    model_config = ConfigDict(frozen=True)

    target_tokens: int = Field(default=1500, gt=0)
    overlap_tokens: int = Field(default=200, ge=0)
    model_context_size: int = Field(default=4096, gt=0)

    @model_validator(mode="after")
    def _overlap_below_target(self) -> ChunkingOptions:
        if self.overlap_tokens >= self.target_tokens:
            raise ValueError(
                f"overlap_tokens ({self.overlap_tokens}) must be smaller than "
                f"target_tokens ({self.target_tokens})"
            )
        if self.target_tokens > self.model_context_size:
            raise ValueError(
                f"target_tokens ({self.target_tokens}) exceeds model_context_size "
                f"({self.model_context_size})"
            )
        return self


# ---------------------------------------------------------------------------
# Service outputs
# ---------------------------------------------------------------------------
class AddKnowledgeResult(BaseModel):
    """Outcome of ingesting one document.

    ``fragment_count`` counts fragments that were embedded and stored; it
    can be lower than the number of chunks when some fragments failed.
    """

    model_config = ConfigDict(frozen=True)

    client_document_id: str
    stored_document_memory_id: str
    fragment_count: int = Field(default=0, ge=0)


class KnowledgeResult(BaseModel):
    """A fragment returned by the retrieval gateway, ranked by similarity."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: Content
    similarity: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    room_id: str | None = None
    world_id: str | None = None
    entity_id: str | None = None


class BatchResult(BaseModel):
    """Summary of a batch ingestion (character knowledge, docs directory)."""

    model_config = ConfigDict(frozen=True)

    successful: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
