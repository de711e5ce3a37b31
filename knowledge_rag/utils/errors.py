"""Custom exception hierarchy for knowledge-rag.

All application exceptions inherit from :class:`KnowledgeRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "pymupdf") caused the failure.

The hierarchy is organized by pipeline stage:

    KnowledgeRAGError  (base -- catch-all for any knowledge-rag error)
    +-- ConfigurationError          (invalid settings / chunking parameters)
    +-- RAGError                    (embedding or vector-store failure)
    |   +-- DuplicateMemoryError    (create on an id that already exists)
    +-- ContentClassificationError  (document-level, aborts ingestion)
    |   +-- InvalidEncodingError    (base64 decode of a binary file failed)
    |   +-- CorruptContentError     (base64-looking text decoded to garbage)
    |   +-- EmptyContentError       (no extractable text)
    |   +-- TextExtractionError     (extractor could not read the format)
    +-- FragmentProcessingError     (one fragment failed; isolated, counted)

Classification errors propagate to the caller of ``add_knowledge``.
Fragment errors never do: the orchestrator logs them and reports a reduced
fragment count instead.
"""


class KnowledgeRAGError(Exception):
    """Base exception for all knowledge-rag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets, e.g.
    ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(KnowledgeRAGError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding / persistence
# ---------------------------------------------------------------------------

class RAGError(KnowledgeRAGError):
    """Raised when an embedding or vector-store operation fails."""

    def __init__(
        self,
        message: str = "RAG pipeline operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DuplicateMemoryError(RAGError):
    """Raised by a memory store when ``create_memory`` hits an existing id.

    Lets a second concurrent writer for the same document id fail fast
    instead of silently overwriting the first writer's record.
    """

    def __init__(
        self,
        memory_id: str,
        provider_name: str | None = None,
    ) -> None:
        self.memory_id = memory_id
        super().__init__(
            message=f"Memory {memory_id} already exists",
            provider_name=provider_name,
        )


# ---------------------------------------------------------------------------
# Content classification (document-level)
# ---------------------------------------------------------------------------

class ContentClassificationError(KnowledgeRAGError):
    """Base for errors that abort a whole document's ingestion."""

    def __init__(
        self,
        message: str = "Document content could not be classified",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidEncodingError(ContentClassificationError):
    """Raised when a file expected to be base64-encoded binary fails to decode."""

    def __init__(
        self,
        message: str = "Invalid base64 content",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CorruptContentError(ContentClassificationError):
    """Raised when base64-looking text decodes to too many invalid characters."""

    def __init__(
        self,
        message: str = "Content appears to be corrupted or incorrectly encoded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyContentError(ContentClassificationError):
    """Raised when no text could be extracted from a document."""

    def __init__(
        self,
        message: str = "No text content extracted",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TextExtractionError(ContentClassificationError):
    """Raised when the text extractor cannot read a binary format."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Fragment-level
# ---------------------------------------------------------------------------

class FragmentProcessingError(KnowledgeRAGError):
    """Raised when embedding or persisting a single fragment fails.

    Carries the owning ``document_id`` and the fragment ``position`` so the
    orchestrator can log enough context to debug a partial ingestion.
    """

    def __init__(
        self,
        document_id: str,
        position: int,
        message: str = "Fragment processing failed",
        provider_name: str | None = None,
    ) -> None:
        self.document_id = document_id
        self.position = position
        super().__init__(
            message=f"Fragment {position} of document {document_id}: {message}",
            provider_name=provider_name,
        )
