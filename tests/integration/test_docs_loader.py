"""Integration tests for loading a docs directory into the knowledge base."""

from __future__ import annotations

from pathlib import Path

import pytest

from knowledge_rag.providers.memory_store.in_memory_store import InMemoryMemoryStore
from knowledge_rag.services.ingestion.docs_loader import load_docs_from_path
from tests.conftest import MockEmbeddingProvider, RecordingTextExtractor, build_service


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    (root / "guides").mkdir(parents=True)
    (root / ".cache").mkdir()
    (root / "intro.md").write_text("# Intro\n\nWelcome to the knowledge base.", encoding="utf-8")
    (root / "guides" / "setup.txt").write_text("Install, configure, then load.", encoding="utf-8")
    (root / ".cache" / "stale.txt").write_text("Should never be loaded.", encoding="utf-8")
    (root / ".hidden.txt").write_text("Also never loaded.", encoding="utf-8")
    return root


class TestLoadDocs:
    @pytest.mark.asyncio
    async def test_loads_visible_files(self, docs_dir: Path) -> None:
        service = build_service(MockEmbeddingProvider(), InMemoryMemoryStore())

        result = await load_docs_from_path(service, str(docs_dir))

        assert (result.successful, result.skipped, result.failed) == (2, 0, 0)
        documents = await service.get_memories()
        assert {d.metadata["path"] for d in documents} == {"intro.md", "guides/setup.txt"}
        assert all(d.metadata["source"] == "docs" for d in documents)

    @pytest.mark.asyncio
    async def test_rerun_skips_unchanged_files(self, docs_dir: Path) -> None:
        embedder = MockEmbeddingProvider()
        service = build_service(embedder, InMemoryMemoryStore())
        await load_docs_from_path(service, str(docs_dir))
        calls = len(embedder.calls)

        result = await load_docs_from_path(service, str(docs_dir))

        assert (result.successful, result.skipped, result.failed) == (0, 2, 0)
        assert len(embedder.calls) == calls

    @pytest.mark.asyncio
    async def test_edited_file_is_ingested_again(self, docs_dir: Path) -> None:
        service = build_service(MockEmbeddingProvider(), InMemoryMemoryStore())
        await load_docs_from_path(service, str(docs_dir))
        (docs_dir / "intro.md").write_text("# Intro\n\nRevised welcome text.", encoding="utf-8")

        result = await load_docs_from_path(service, str(docs_dir))

        assert (result.successful, result.skipped) == (1, 1)

    @pytest.mark.asyncio
    async def test_failing_file_is_counted(self, docs_dir: Path) -> None:
        (docs_dir / "broken.pdf").write_bytes(b"%PDF-1.4 truncated")
        service = build_service(
            MockEmbeddingProvider(), InMemoryMemoryStore(), extractor=RecordingTextExtractor(fail=True)
        )

        result = await load_docs_from_path(service, str(docs_dir))

        assert (result.successful, result.failed) == (2, 1)
        assert result.errors[0].startswith("broken.pdf:")

    @pytest.mark.asyncio
    async def test_binary_files_are_sent_as_base64(self, docs_dir: Path) -> None:
        (docs_dir / "paper.pdf").write_bytes(b"%PDF-1.4 body")
        extractor = RecordingTextExtractor(text="Extracted paper text.")
        service = build_service(MockEmbeddingProvider(), InMemoryMemoryStore(), extractor=extractor)

        result = await load_docs_from_path(service, str(docs_dir))

        assert result.successful == 3
        assert extractor.calls == [(b"%PDF-1.4 body", "application/pdf", "paper.pdf")]

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path: Path) -> None:
        service = build_service(MockEmbeddingProvider(), InMemoryMemoryStore())

        result = await load_docs_from_path(service, str(tmp_path / "absent"))

        assert (result.successful, result.skipped, result.failed) == (0, 0, 0)


class TestStartup:
    @pytest.mark.asyncio
    async def test_start_loads_docs_when_enabled(self, docs_dir: Path) -> None:
        service = build_service(
            MockEmbeddingProvider(),
            InMemoryMemoryStore(),
            docs_path=str(docs_dir),
            load_docs_on_startup=True,
        )

        await service.start()

        assert len(await service.get_memories()) == 2

    @pytest.mark.asyncio
    async def test_start_skips_docs_when_disabled(self, docs_dir: Path) -> None:
        service = build_service(
            MockEmbeddingProvider(),
            InMemoryMemoryStore(),
            docs_path=str(docs_dir),
            load_docs_on_startup=False,
        )

        await service.start()

        assert await service.get_memories() == []

    @pytest.mark.asyncio
    async def test_start_tolerates_missing_docs_path(self, tmp_path: Path) -> None:
        service = build_service(
            MockEmbeddingProvider(),
            InMemoryMemoryStore(),
            docs_path=str(tmp_path / "nowhere"),
            load_docs_on_startup=True,
        )

        await service.start(character_knowledge=["Still loads character knowledge."])

        assert len(await service.get_memories()) == 1
