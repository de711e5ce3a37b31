"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Works against OpenAI itself and any OpenAI-compatible endpoint (Akash,
TogetherAI, Fireworks) through ``openai_base_url``.
"""

from __future__ import annotations

import openai
import structlog

from knowledge_rag.config.settings import Settings
from knowledge_rag.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_rag.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Native output sizes of known embedding models.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "BAAI-bge-large-en-v1-5": 1024,  # Akash naming
    "intfloat/multilingual-e5-large-instruct": 1024,
}

# Only the v3 models accept a ``dimensions`` request parameter.
_SHORTENABLE_PREFIX = "text-embedding-3"


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    ``embedding_dimension`` in settings overrides the model's native size;
    for ``text-embedding-3-*`` models the override is sent to the API so
    vectors come back shortened, for other models it simply declares what
    the endpoint returns.  Models missing from the table with no override
    report a dimension of 0 (unknown).  The API client is created on first
    use, so a provider without a key can still be constructed and inspected.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {}
        if self._api_key:
            client_kwargs["api_key"] = self._api_key
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client_kwargs = client_kwargs
        self._client: openai.AsyncOpenAI | None = None
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._requested_dimension = settings.embedding_dimension
        # 0 for unlisted models: the size is then whatever the endpoint returns.
        self._dimension = settings.embedding_dimension or _MODEL_DIMENSIONS.get(self._model, 0)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, splitting into API calls of at most 2048 inputs."""
        if not texts:
            return []

        request_kwargs: dict = {"model": self._model}
        if self._requested_dimension and self._model.startswith(_SHORTENABLE_PREFIX):
            request_kwargs["dimensions"] = self._requested_dimension

        try:
            vectors: list[list[float]] = []
            for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
                batch = texts[start : start + _OPENAI_BATCH_LIMIT]
                response = await self._get_client().embeddings.create(input=batch, **request_kwargs)
                vectors.extend(item.embedding for item in response.data)
                logger.debug(
                    "openai_embedding_batch",
                    model=self._model,
                    provider=self._provider_label,
                    batch_size=len(batch),
                    tokens=response.usage.total_tokens if response.usage else None,
                )
            return vectors
        except openai.OpenAIError as exc:
            raise RAGError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_client(self) -> openai.AsyncOpenAI:
        """Create the API client on first use; raises ``openai.OpenAIError`` without a key."""
        if self._client is None:
            self._client = openai.AsyncOpenAI(**self._client_kwargs)
        return self._client
