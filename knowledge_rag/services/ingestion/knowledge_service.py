"""Orchestrator for knowledge ingestion and lookup.

Pipeline stages: **classify -> persist document -> chunk -> embed -> store**.

:class:`KnowledgeService` coordinates its collaborators without any of them
knowing about each other:

    1. ContentClassifier -- decodes base64 / extracts binary text
    2. IMemoryStore      -- persists the document record (``documents``)
    3. TextChunker       -- splits the text into overlapping token windows
    4. IEmbeddingProvider -- embeds each fragment under the ConcurrencyGate
    5. IMemoryStore      -- persists each embedded fragment (``knowledge``)

The document is always persisted before any of its fragments.  Fragments
are embedded concurrently; one failing fragment is logged and counted but
never aborts the document, so ``fragment_count`` may be lower than the
number of chunks.

All dependencies are injected via the constructor, so providers can be
swapped (e.g. in-memory -> ChromaDB) without changing this class.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog

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
from knowledge_rag.services.ingestion.docs_loader import load_docs_from_path
from knowledge_rag.services.ingestion.identity import derive_document_id, derive_fragment_id
from knowledge_rag.utils.concurrency import KeyedLock, throttled_gather
from knowledge_rag.utils.errors import FragmentProcessingError, RAGError
from knowledge_rag.utils.logging import agent_context

if TYPE_CHECKING:
    from knowledge_rag.interfaces.embedding_provider import IEmbeddingProvider
    from knowledge_rag.interfaces.memory_store import IMemoryStore
    from knowledge_rag.services.ingestion.chunker import TextChunker
    from knowledge_rag.services.ingestion.content_classifier import ContentClassifier
    from knowledge_rag.services.retrieval_service import RetrievalService
    from knowledge_rag.utils.concurrency import ConcurrencyGate

logger = structlog.get_logger(logger_name=__name__)

_PATH_HEADER = re.compile(r"^Path: (.+?)\r?\n")


def parse_path_header(text: str) -> dict[str, Any]:
    """Derive file metadata from a leading ``Path: <file>`` line, if present."""
    match = _PATH_HEADER.match(text)
    if not match:
        return {}
    file_path = match.group(1).strip()
    pure = PurePosixPath(file_path)
    extension = pure.suffix.lstrip(".")
    return {
        "path": file_path,
        "filename": pure.name,
        "file_ext": extension,
        "title": pure.stem if extension else pure.name,
        "file_type": f"text/{extension or 'plain'}",
        "file_size": len(text),
    }


class KnowledgeService:
    """Ingests documents into the knowledge base and serves lookups.

    Parameters
    ----------
    agent_id:
        Owner of every record this service writes; also the default scope.
    embedding_provider:
        Generates fragment vectors.
    memory_store:
        Persists documents and fragments.
    classifier:
        Decodes and extracts incoming content.
    chunker:
        Splits extracted text into fragments.
    gate:
        Bounds concurrent embedding calls across every operation of this
        service (and the retrieval service sharing it).
    retrieval:
        Answers :meth:`get_knowledge` queries.
    chunking:
        Token budget for fragments.
    docs_path:
        Directory loaded by :meth:`start` when *load_docs_on_startup* is set.
    """

    def __init__(
        self,
        agent_id: str,
        embedding_provider: IEmbeddingProvider,
        memory_store: IMemoryStore,
        classifier: ContentClassifier,
        chunker: TextChunker,
        gate: ConcurrencyGate,
        retrieval: RetrievalService,
        chunking: ChunkingOptions | None = None,
        docs_path: str | None = None,
        load_docs_on_startup: bool = False,
    ) -> None:
        self._agent_id = agent_id
        self._embedding_provider = embedding_provider
        self._memory_store = memory_store
        self._classifier = classifier
        self._chunker = chunker
        self._gate = gate
        self._retrieval = retrieval
        self._chunking = chunking or ChunkingOptions()
        self._docs_path = docs_path
        self._load_docs_on_startup = load_docs_on_startup
        self._document_locks = KeyedLock()

    @property
    def agent_id(self) -> str:
        return self._agent_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, character_knowledge: list[str] | None = None) -> None:
        """Load the docs directory and character knowledge, if configured."""
        with agent_context(self._agent_id):
            logger.info("knowledge_service_starting")

            if self._load_docs_on_startup and self._docs_path:
                if Path(self._docs_path).is_dir():
                    result = await load_docs_from_path(self, self._docs_path)
                    logger.info(
                        "startup_docs_loaded",
                        path=self._docs_path,
                        successful=result.successful,
                        skipped=result.skipped,
                        failed=result.failed,
                    )
                else:
                    logger.warning("docs_path_missing", path=self._docs_path)

            if character_knowledge:
                await self.process_character_knowledge(character_knowledge)

    async def stop(self) -> None:
        logger.info("knowledge_service_stopped", agent_id=self._agent_id)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def add_knowledge(self, options: AddKnowledgeOptions) -> AddKnowledgeResult:
        """Ingest one document, or report the existing one.

        If a document with ``options.client_document_id`` already exists the
        call is a no-op that returns its current fragment count.

        Raises
        ------
        ContentClassificationError
            If the content cannot be decoded or has no text.  Nothing is
            persisted in that case.
        """
        document_id = options.client_document_id
        with agent_context(self._agent_id):
            async with self._document_locks.hold(document_id):
                existing = await self._existing_fragment_count(document_id)
                if existing is not None:
                    logger.info(
                        "document_already_exists",
                        document_id=document_id,
                        fragment_count=existing,
                    )
                    return AddKnowledgeResult(
                        client_document_id=document_id,
                        stored_document_memory_id=document_id,
                        fragment_count=existing,
                    )
                return await self._ingest(options, replace=False)

    async def update_knowledge(self, options: AddKnowledgeOptions) -> AddKnowledgeResult:
        """Replace a document's content and regenerate its fragments.

        Creates the document when it does not exist yet.
        """
        with agent_context(self._agent_id):
            async with self._document_locks.hold(options.client_document_id):
                return await self._ingest(options, replace=True)

    async def add_knowledge_item(self, item: KnowledgeItem, scope: Scope | None = None) -> int:
        """Store already-textual knowledge, updating the document if it exists.

        Returns the number of fragments stored.
        """
        scope = self._default_scope(scope)
        async with self._document_locks.hold(item.id):
            document = Memory(
                id=item.id,
                agent_id=self._agent_id,
                room_id=scope.room_id,
                world_id=scope.world_id,
                entity_id=scope.entity_id,
                content=item.content,
                metadata={
                    **item.metadata,
                    "type": MemoryType.DOCUMENT.value,
                    "document_id": item.id,
                    "timestamp": item.metadata.get("timestamp") or now_ms(),
                },
            )
            replaced = await self._persist_document(document, replace=True)
            if replaced:
                await self._delete_fragments(item.id)
            return await self._process_fragments(document, item.content.text)

    async def process_character_knowledge(self, items: list[str]) -> BatchResult:
        """Ingest character knowledge strings, skipping ones already stored.

        Each string is its own document with a content-derived id, scoped to
        the agent.  Items run concurrently; per-item errors are logged and
        counted in the returned summary.
        """
        with agent_context(self._agent_id):
            logger.info("processing_character_knowledge", items=len(items))
            outcomes = await asyncio.gather(
                *(self._process_character_item(item) for item in items),
                return_exceptions=True,
            )

        successful = skipped = failed = 0
        errors: list[str] = []
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                failed += 1
                errors.append(str(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome:
                successful += 1
            else:
                skipped += 1

        logger.info(
            "character_knowledge_processed",
            successful=successful,
            skipped=skipped,
            failed=failed,
        )
        return BatchResult(successful=successful, skipped=skipped, failed=failed, errors=errors)

    # ------------------------------------------------------------------
    # Lookup and management
    # ------------------------------------------------------------------

    async def check_existing_knowledge(self, knowledge_id: str) -> bool:
        """Return ``True`` if any record with *knowledge_id* is stored."""
        return await self._memory_store.get_memory_by_id(knowledge_id) is not None

    async def get_knowledge(self, query: str, scope: Scope | None = None) -> list[KnowledgeResult]:
        """Return this agent's fragments relevant to *query* within *scope*."""
        return await self._retrieval.query(query, scope, agent_id=self._agent_id)

    async def get_memories(
        self,
        table_name: str = DOCUMENTS_TABLE,
        room_id: str | None = None,
        count: int | None = None,
        end: int | None = None,
    ) -> list[Memory]:
        """List this agent's records, newest first."""
        if table_name != DOCUMENTS_TABLE:
            logger.warning("unexpected_table_listed", table=table_name)
        return await self._memory_store.get_memories(
            table_name=table_name,
            agent_id=self._agent_id,
            room_id=room_id,
            count=count,
            end=end,
        )

    async def delete_memory(self, memory_id: str) -> None:
        """Delete one record; fragments of a deleted document are not cascaded."""
        await self._memory_store.delete_memory(memory_id)
        logger.info("memory_deleted", memory_id=memory_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _default_scope(self, scope: Scope | None) -> Scope:
        scope = scope or Scope()
        return Scope(
            room_id=scope.room_id or self._agent_id,
            world_id=scope.world_id or self._agent_id,
            entity_id=scope.entity_id or self._agent_id,
        )

    async def _existing_fragment_count(self, document_id: str) -> int | None:
        """Fragment count of an existing document, or ``None`` if absent.

        Lookup failures are logged and treated as absent so ingestion can
        proceed.
        """
        try:
            existing = await self._memory_store.get_memory_by_id(document_id)
            if existing is None or existing.memory_type is not MemoryType.DOCUMENT:
                return None
            fragments = await self._fragments_of(document_id)
            return len(fragments)
        except Exception as exc:
            logger.warning("existing_document_check_failed", document_id=document_id, error=str(exc))
            return None

    async def _fragments_of(self, document_id: str) -> list[Memory]:
        fragments = await self._memory_store.get_memories(
            table_name=KNOWLEDGE_TABLE, agent_id=self._agent_id
        )
        return [f for f in fragments if f.document_id == document_id]

    async def _delete_fragments(self, document_id: str) -> int:
        stale = await self._fragments_of(document_id)
        for fragment in stale:
            await self._memory_store.delete_memory(fragment.id)
        if stale:
            logger.info("stale_fragments_deleted", document_id=document_id, count=len(stale))
        return len(stale)

    async def _persist_document(self, document: Memory, replace: bool) -> bool:
        """Create *document*, or update it in place when *replace* is set.

        Returns ``True`` if an existing record was replaced.
        """
        if replace and await self._memory_store.update_memory(document):
            return True
        await self._memory_store.create_memory(document, DOCUMENTS_TABLE)
        return False

    async def _ingest(self, options: AddKnowledgeOptions, replace: bool) -> AddKnowledgeResult:
        document_id = options.client_document_id
        try:
            classified = await self._classifier.classify(
                options.content, options.content_type, options.original_filename
            )
        except Exception as exc:
            logger.error(
                "content_classification_failed",
                document_id=document_id,
                filename=options.original_filename,
                content_type=options.content_type,
                error=str(exc),
            )
            raise

        scope = self._default_scope(
            Scope(room_id=options.room_id, world_id=options.world_id, entity_id=options.entity_id)
        )
        document = Memory(
            id=document_id,
            agent_id=self._agent_id,
            room_id=scope.room_id,
            world_id=scope.world_id,
            entity_id=scope.entity_id,
            content=Content(text=classified.stored_text),
            metadata={
                "source": "upload",
                **options.metadata,
                "type": MemoryType.DOCUMENT.value,
                "document_id": document_id,
                "original_filename": options.original_filename,
                "content_type": options.content_type,
                "file_size": classified.file_size,
                "timestamp": now_ms(),
            },
        )

        replaced = await self._persist_document(document, replace=replace)
        if replaced:
            await self._delete_fragments(document_id)

        fragment_count = await self._process_fragments(document, classified.extracted_text)
        logger.info(
            "document_ingested",
            document_id=document_id,
            filename=options.original_filename,
            kind=classified.kind.value,
            fragment_count=fragment_count,
            replaced=replaced,
        )
        return AddKnowledgeResult(
            client_document_id=document_id,
            stored_document_memory_id=document_id,
            fragment_count=fragment_count,
        )

    async def _process_character_item(self, item: str) -> bool:
        """Ingest one character knowledge string; ``False`` if it was skipped."""
        knowledge_id = derive_document_id(self._agent_id, item)
        if await self.check_existing_knowledge(knowledge_id):
            logger.debug("character_knowledge_exists", knowledge_id=knowledge_id)
            return False

        metadata = {"source": "character", "timestamp": now_ms(), **parse_path_header(item)}
        try:
            await self.add_knowledge_item(
                KnowledgeItem(id=knowledge_id, content=Content(text=item), metadata=metadata)
            )
        except Exception as exc:
            logger.error(
                "character_knowledge_failed",
                knowledge_id=knowledge_id,
                preview=item[:100],
                error=str(exc),
            )
            raise
        return True

    async def _process_fragments(self, document: Memory, text: str) -> int:
        """Chunk, embed and store *text* as fragments of *document*.

        Returns the number of fragments stored.
        """
        chunks = self._chunker.chunk(
            text,
            target_tokens=self._chunking.target_tokens,
            overlap_tokens=self._chunking.overlap_tokens,
        )
        if not chunks:
            logger.warning("no_fragments_created", document_id=document.id)
            return 0

        results = await throttled_gather(
            [self._process_fragment(document, position, chunk) for position, chunk in enumerate(chunks)],
            self._gate,
        )

        stored = 0
        for result in results:
            if isinstance(result, FragmentProcessingError):
                continue
            if isinstance(result, BaseException):
                raise result
            stored += 1

        log = logger.info if stored == len(chunks) else logger.warning
        log(
            "fragments_processed",
            document_id=document.id,
            stored=stored,
            failed=len(chunks) - stored,
            total=len(chunks),
        )
        return stored

    async def _process_fragment(self, document: Memory, position: int, text: str) -> Memory:
        """Embed and persist one fragment.  Runs while holding a gate permit."""
        try:
            embedding = await self._embedding_provider.embed_single(text)
            expected = self._embedding_provider.get_dimension()
            if expected > 0 and len(embedding) != expected:
                raise RAGError(
                    message=f"Expected {expected}-dim embedding, got {len(embedding)}",
                    provider_name=self._embedding_provider.get_provider_name(),
                )

            fragment = Memory(
                id=derive_fragment_id(self._agent_id, document.id, position),
                agent_id=self._agent_id,
                room_id=document.room_id,
                world_id=document.world_id,
                entity_id=document.entity_id,
                content=Content(text=text),
                embedding=embedding,
                metadata={
                    **document.metadata,
                    "type": MemoryType.FRAGMENT.value,
                    "document_id": document.id,
                    "position": position,
                    "timestamp": now_ms(),
                },
            )
            await self._memory_store.create_memory(fragment, KNOWLEDGE_TABLE)
            return fragment
        except Exception as exc:
            logger.error(
                "fragment_processing_failed",
                document_id=document.id,
                position=position,
                error=str(exc),
            )
            raise FragmentProcessingError(document.id, position, str(exc)) from exc
