"""knowledge-rag assembly point.

Wires every provider and service together via dependency injection.
Configuration comes from ``.env`` / environment variables through
:class:`~knowledge_rag.config.settings.Settings`.
"""

from __future__ import annotations

import structlog

from knowledge_rag.config.settings import Settings
from knowledge_rag.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_rag.interfaces.memory_store import IMemoryStore
from knowledge_rag.providers.embedding.cached_embedding_provider import CachedEmbeddingProvider
from knowledge_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from knowledge_rag.providers.extraction.document_text_extractor import DocumentTextExtractor
from knowledge_rag.providers.memory_store.in_memory_store import InMemoryMemoryStore
from knowledge_rag.services.ingestion.chunker import TextChunker
from knowledge_rag.services.ingestion.content_classifier import ContentClassifier
from knowledge_rag.services.ingestion.knowledge_service import KnowledgeService
from knowledge_rag.services.retrieval_service import RetrievalService
from knowledge_rag.utils.concurrency import ConcurrencyGate
from knowledge_rag.utils.errors import ConfigurationError
from knowledge_rag.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """OpenAI (or compatible) embeddings behind the TTL cache."""
    app_settings.validate_embedding_config()
    provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
    if app_settings.embedding_cache_size > 0:
        provider = CachedEmbeddingProvider(
            provider,
            max_size=app_settings.embedding_cache_size,
            ttl=app_settings.embedding_cache_ttl,
        )
    return provider


def _build_memory_store(app_settings: Settings) -> IMemoryStore:
    """Select the memory store named by ``VECTOR_STORE``."""
    backend = app_settings.vector_store.lower()
    if backend == "memory":
        return InMemoryMemoryStore()
    if backend == "chromadb":
        from knowledge_rag.providers.memory_store.chromadb_store import ChromaDBMemoryStore

        return ChromaDBMemoryStore(
            persist_directory=app_settings.chromadb_persist_dir,
            documents_collection=app_settings.chromadb_documents_collection,
            knowledge_collection=app_settings.chromadb_knowledge_collection,
        )
    raise ConfigurationError(f"Unknown VECTOR_STORE {app_settings.vector_store!r}")


def build_knowledge_service(
    custom_settings: Settings | None = None,
    agent_id: str | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    memory_store: IMemoryStore | None = None,
) -> KnowledgeService:
    """Construct a :class:`KnowledgeService` with all collaborators injected.

    Parameters
    ----------
    custom_settings:
        Application settings.  Loaded from the environment if not provided.
    agent_id:
        Owner of the knowledge base; defaults to ``settings.agent_id``.
    embedding_provider, memory_store:
        Optional pre-built providers, overriding the configured ones.

    Raises
    ------
    ConfigurationError
        If chunking, embedding or store settings are invalid.
    """
    s = custom_settings or Settings()
    configure_logging(log_level=s.log_level, json_output=(s.app_env == "production"))

    chunking = s.chunking_options()
    embedder = embedding_provider or _build_embedding_provider(s)
    store = memory_store or _build_memory_store(s)
    gate = ConcurrencyGate(s.max_concurrent_embeddings)

    chunker = TextChunker(
        tokenizer_name=s.tokenizer_name or None,
        model_context_size=s.model_context_size,
    )
    classifier = ContentClassifier(
        DocumentTextExtractor(),
        max_invalid_char_ratio=s.base64_max_invalid_ratio,
    )
    retrieval = RetrievalService(
        embedding_provider=embedder,
        memory_store=store,
        gate=gate,
        result_limit=s.search_result_limit,
        match_threshold=s.search_match_threshold,
    )

    service = KnowledgeService(
        agent_id=agent_id or s.agent_id,
        embedding_provider=embedder,
        memory_store=store,
        classifier=classifier,
        chunker=chunker,
        gate=gate,
        retrieval=retrieval,
        chunking=chunking,
        docs_path=s.knowledge_docs_path,
        load_docs_on_startup=s.load_docs_on_startup,
    )
    _logger.info(
        "knowledge_service_built",
        agent_id=service.agent_id,
        embedding_provider=embedder.get_provider_name(),
        memory_store=store.get_provider_name(),
        gate_capacity=gate.capacity,
        target_tokens=chunking.target_tokens,
        overlap_tokens=chunking.overlap_tokens,
    )
    return service
