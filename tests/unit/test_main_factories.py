"""Unit tests for Settings validation and the factory functions in knowledge_rag/main.py.

No network calls are made: the OpenAI client is only constructed, never
used, and the chunker falls back to the regex tokenizer.
"""

from __future__ import annotations

import pytest

from knowledge_rag.config.settings import Settings
from knowledge_rag.main import _build_embedding_provider, _build_memory_store, build_knowledge_service
from knowledge_rag.models.knowledge import AddKnowledgeOptions
from knowledge_rag.providers.embedding.cached_embedding_provider import CachedEmbeddingProvider
from knowledge_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from knowledge_rag.providers.memory_store.in_memory_store import InMemoryMemoryStore
from knowledge_rag.services.ingestion.knowledge_service import KnowledgeService
from knowledge_rag.utils.errors import ConfigurationError
from tests.conftest import MockEmbeddingProvider


# ======================================================================
# Shared helpers
# ======================================================================


def _settings(**overrides) -> Settings:
    """Build a Settings instance that ignores any local .env file."""
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_embedding_model": "text-embedding-3-small",
        "embedding_dimension": 0,
        "vector_store": "memory",
        "tokenizer_name": "",
        "load_docs_on_startup": False,
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ======================================================================
# Settings
# ======================================================================


class TestSettings:
    def test_chunking_defaults(self) -> None:
        options = _settings().chunking_options()
        assert options.target_tokens == 1500
        assert options.overlap_tokens == 200
        assert options.model_context_size == 4096

    @pytest.mark.parametrize(
        "overrides",
        [
            {"chunk_target_tokens": 0},
            {"chunk_overlap_tokens": -1},
            {"chunk_target_tokens": 100, "chunk_overlap_tokens": 100},
            {"chunk_target_tokens": 8000, "model_context_size": 4096},
        ],
    )
    def test_invalid_chunking_is_configuration_error(self, overrides: dict) -> None:
        with pytest.raises(ConfigurationError):
            _settings(**overrides).chunking_options()

    def test_missing_api_key_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _settings(openai_api_key="").validate_embedding_config()
        assert "OPENAI_API_KEY" in str(exc_info.value)

    def test_negative_dimension_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            _settings(embedding_dimension=-1).validate_embedding_config()

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNK_TARGET_TOKENS", "800")
        monkeypatch.setenv("MAX_CONCURRENT_EMBEDDINGS", "4")
        settings = Settings(_env_file=None)
        assert settings.chunk_target_tokens == 800
        assert settings.max_concurrent_embeddings == 4


# ======================================================================
# Provider factories
# ======================================================================


class TestBuildEmbeddingProvider:
    def test_wrapped_in_cache_by_default(self) -> None:
        provider = _build_embedding_provider(_settings())
        assert isinstance(provider, CachedEmbeddingProvider)
        assert provider.get_provider_name() == "cached:openai_embedding"

    def test_cache_disabled(self) -> None:
        provider = _build_embedding_provider(_settings(embedding_cache_size=0))
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_missing_key_fails_before_construction(self) -> None:
        with pytest.raises(ConfigurationError):
            _build_embedding_provider(_settings(openai_api_key=""))


class TestBuildMemoryStore:
    def test_memory_backend(self) -> None:
        assert isinstance(_build_memory_store(_settings()), InMemoryMemoryStore)

    def test_chromadb_backend(self, tmp_path) -> None:
        store = _build_memory_store(
            _settings(vector_store="chromadb", chromadb_persist_dir=str(tmp_path / "chroma"))
        )
        assert store.get_provider_name() == "chromadb"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigurationError):
            _build_memory_store(_settings(vector_store="pinecone"))


# ======================================================================
# build_knowledge_service
# ======================================================================


class TestBuildKnowledgeService:
    def test_builds_from_settings(self) -> None:
        service = build_knowledge_service(_settings(agent_id="agent-from-settings"))
        assert isinstance(service, KnowledgeService)
        assert service.agent_id == "agent-from-settings"

    def test_explicit_agent_overrides_settings(self) -> None:
        service = build_knowledge_service(_settings(), agent_id="explicit-agent")
        assert service.agent_id == "explicit-agent"

    def test_invalid_chunking_fails_fast(self) -> None:
        with pytest.raises(ConfigurationError):
            build_knowledge_service(_settings(chunk_target_tokens=50, chunk_overlap_tokens=60))

    @pytest.mark.asyncio
    async def test_injected_providers_are_used(self, sample_text: str) -> None:
        embedder = MockEmbeddingProvider()
        store = InMemoryMemoryStore()
        service = build_knowledge_service(
            _settings(openai_api_key=""),
            embedding_provider=embedder,
            memory_store=store,
        )

        result = await service.add_knowledge(
            AddKnowledgeOptions(
                client_document_id="doc-1",
                content_type="text/plain",
                original_filename="notes.txt",
                content=sample_text,
            )
        )

        assert result.fragment_count == 1
        assert embedder.calls
        assert await store.get_memory_by_id("doc-1") is not None
