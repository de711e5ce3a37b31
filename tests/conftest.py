"""Shared pytest fixtures for the knowledge-rag test suite."""

from __future__ import annotations

import asyncio
import hashlib
import struct
from collections.abc import Callable

import pytest

from knowledge_rag.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_rag.interfaces.text_extractor import ITextExtractor
from knowledge_rag.models.knowledge import ChunkingOptions
from knowledge_rag.providers.memory_store.in_memory_store import InMemoryMemoryStore
from knowledge_rag.services.ingestion.chunker import TextChunker
from knowledge_rag.services.ingestion.content_classifier import ContentClassifier
from knowledge_rag.services.ingestion.knowledge_service import KnowledgeService
from knowledge_rag.services.retrieval_service import RetrievalService
from knowledge_rag.utils.concurrency import ConcurrencyGate
from knowledge_rag.utils.errors import RAGError, TextExtractionError

AGENT_ID = "11111111-1111-1111-1111-111111111111"

_EMBEDDING_DIM = 128


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, then unpacks bytes into floats and
    normalises to unit length.  Same text always produces the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    values = list(struct.unpack(f"<{dim}f", raw))
    # NaN/inf bit patterns are replaced so the vector stays finite.
    values = [v if v == v and abs(v) < 1e30 else 0.0 for v in values]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """Deterministic embedding provider that records how it is called.

    Parameters
    ----------
    delay:
        Seconds each call sleeps, so concurrent calls overlap.
    fail_when:
        Predicate on the input text; matching texts raise :class:`RAGError`.
    """

    def __init__(
        self,
        delay: float = 0.0,
        fail_when: Callable[[str], bool] | None = None,
        dim: int = _EMBEDDING_DIM,
    ) -> None:
        self._delay = delay
        self._fail_when = fail_when
        self._dim = dim
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            if self._fail_when is not None and self._fail_when(text):
                raise RAGError("simulated embedding failure", provider_name="mock-embedding")
            return _hash_to_vector(text, self._dim)
        finally:
            self.active -= 1

    def get_dimension(self) -> int:
        return self._dim

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class RecordingTextExtractor(ITextExtractor):
    """Extractor stub: returns *text* (or the UTF-8 bytes) and records calls."""

    def __init__(self, text: str | None = None, fail: bool = False) -> None:
        self._text = text
        self._fail = fail
        self.calls: list[tuple[bytes, str, str]] = []

    async def extract_text(self, data: bytes, content_type: str, filename: str) -> str:
        self.calls.append((data, content_type, filename))
        if self._fail:
            raise TextExtractionError(f"cannot read {filename}", provider_name="mock-extractor")
        if self._text is not None:
            return self._text
        return data.decode("utf-8", errors="replace")


def build_service(
    embedding: IEmbeddingProvider,
    store: InMemoryMemoryStore | None = None,
    gate: ConcurrencyGate | None = None,
    extractor: ITextExtractor | None = None,
    target_tokens: int = 1500,
    overlap_tokens: int = 200,
    agent_id: str = AGENT_ID,
    docs_path: str | None = None,
    load_docs_on_startup: bool = False,
) -> KnowledgeService:
    """Construct a KnowledgeService wired to test doubles.

    The chunker uses the regex tokenizer so token counts are predictable:
    every word and every punctuation mark is one token.
    """
    store = store or InMemoryMemoryStore()
    gate = gate or ConcurrencyGate(10)
    retrieval = RetrievalService(embedding_provider=embedding, memory_store=store, gate=gate)
    return KnowledgeService(
        agent_id=agent_id,
        embedding_provider=embedding,
        memory_store=store,
        classifier=ContentClassifier(extractor or RecordingTextExtractor()),
        chunker=TextChunker(tokenizer_name=None),
        gate=gate,
        retrieval=retrieval,
        chunking=ChunkingOptions(target_tokens=target_tokens, overlap_tokens=overlap_tokens),
        docs_path=docs_path,
        load_docs_on_startup=load_docs_on_startup,
    )


def numbered_words(prefix: str, count: int) -> str:
    """``"w_0 w_1 ... w_{count-1}"`` for ``prefix="w_"`` -- one regex token per word.

    Pass a prefix containing ``_`` so the text is never mistaken for base64.
    """
    return " ".join(f"{prefix}{i}" for i in range(count))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def memory_store() -> InMemoryMemoryStore:
    return InMemoryMemoryStore()


@pytest.fixture
def text_extractor() -> RecordingTextExtractor:
    return RecordingTextExtractor()


@pytest.fixture
def sample_text() -> str:
    """A few paragraphs of plain prose (punctuated, so never base64-like)."""
    return (
        "Retrieval-augmented generation pairs a language model with a store of "
        "documents. Before answering, the system looks up passages relevant to "
        "the question and places them in the prompt.\n\n"
        "Documents are split into overlapping fragments so that each one fits the "
        "embedding model's context window. Overlap keeps sentences that straddle "
        "a boundary retrievable from either side.\n\n"
        "Each fragment is embedded once at ingestion time. Queries are embedded "
        "with the same model and compared by cosine similarity."
    )


@pytest.fixture
def knowledge_service(
    mock_embedding_provider: MockEmbeddingProvider,
    memory_store: InMemoryMemoryStore,
) -> KnowledgeService:
    return build_service(mock_embedding_provider, memory_store)
