"""Unit tests for knowledge_rag.utils.logging."""

from __future__ import annotations

import logging

import pytest
import structlog

from knowledge_rag.models.knowledge import AddKnowledgeOptions
from knowledge_rag.utils.logging import agent_context, configure_logging
from tests.conftest import AGENT_ID, MockEmbeddingProvider, build_service


class ContextRecordingEmbedder(MockEmbeddingProvider):
    """Records the structlog context seen by each embedding call."""

    def __init__(self) -> None:
        super().__init__()
        self.contexts: list[dict] = []

    async def embed_single(self, text: str) -> list[float]:
        self.contexts.append(structlog.contextvars.get_contextvars())
        return await super().embed_single(text)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    quiet = {name: logging.getLogger(name).level for name in ("chromadb", "httpx", "openai")}
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, previous in quiet.items():
        logging.getLogger(name).setLevel(previous)


class TestAgentContext:
    def test_binds_and_unbinds(self) -> None:
        with agent_context("agent-7"):
            assert structlog.contextvars.get_contextvars()["agent_id"] == "agent-7"
        assert "agent_id" not in structlog.contextvars.get_contextvars()

    def test_nested_block_restores_outer_agent(self) -> None:
        with agent_context("outer"):
            with agent_context("inner"):
                assert structlog.contextvars.get_contextvars()["agent_id"] == "inner"
            assert structlog.contextvars.get_contextvars()["agent_id"] == "outer"

    @pytest.mark.asyncio
    async def test_fragment_work_sees_agent_id(self) -> None:
        embedder = ContextRecordingEmbedder()
        service = build_service(embedder)

        await service.add_knowledge(
            AddKnowledgeOptions(
                client_document_id="doc-1",
                content_type="text/plain",
                original_filename="notes.txt",
                content="Warehouse parties moved outdoors in the summer of 1988.",
            )
        )

        assert embedder.contexts
        assert all(ctx.get("agent_id") == AGENT_ID for ctx in embedder.contexts)
        assert "agent_id" not in structlog.contextvars.get_contextvars()


class TestConfigureLogging:
    def test_quiets_client_libraries(self, restore_logging) -> None:
        configure_logging(log_level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG
        for name in ("chromadb", "httpx", "openai"):
            assert logging.getLogger(name).level == logging.WARNING

    def test_stricter_root_level_wins(self, restore_logging) -> None:
        configure_logging(log_level="ERROR")

        assert logging.getLogger("chromadb").level == logging.ERROR
