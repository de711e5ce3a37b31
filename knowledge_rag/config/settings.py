"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, highest priority first:

  1. Environment variables, e.g. ``CHUNK_TARGET_TOKENS=1200``
  2. A ``.env`` file in the working directory

Field names map to upper-cased environment variable names.  Defaults below
apply when neither source sets a value.
"""

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from knowledge_rag.models.knowledge import ChunkingOptions
from knowledge_rag.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """knowledge-rag settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Agent ===
    agent_id: str = "00000000-0000-0000-0000-000000000000"

    # === Embedding provider ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (Akash, TogetherAI, ...)
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 0  # 0 = the model's native dimension
    embedding_cache_size: int = 500
    embedding_cache_ttl: int = 4 * 60 * 60

    # === Chunking ===
    chunk_target_tokens: int = 1500
    chunk_overlap_tokens: int = 200
    model_context_size: int = 4096
    tokenizer_name: str = "bert-base-uncased"  # empty = regex approximation

    # === Concurrency ===
    max_concurrent_embeddings: int = 10

    # === Retrieval ===
    search_result_limit: int = 20
    search_match_threshold: float = 0.1

    # === Content classification ===
    # Share of U+FFFD characters tolerated when base64-looking text is decoded.
    base64_max_invalid_ratio: float = 0.1

    # === Persistence ===
    vector_store: str = "memory"  # "memory" or "chromadb"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_documents_collection: str = "knowledge_documents"
    chromadb_knowledge_collection: str = "knowledge_fragments"

    # === Startup loading ===
    load_docs_on_startup: bool = True
    knowledge_docs_path: str = "./docs"

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def chunking_options(self) -> ChunkingOptions:
        """Return the configured token budget, raising ConfigurationError if inconsistent."""
        try:
            return ChunkingOptions(
                target_tokens=self.chunk_target_tokens,
                overlap_tokens=self.chunk_overlap_tokens,
                model_context_size=self.model_context_size,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid chunking configuration: {exc}") from exc

    def validate_embedding_config(self) -> None:
        """Check the embedding settings before any provider is constructed."""
        if not self.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY is required for the OpenAI embedding provider",
                provider_name="openai",
            )
        if not self.openai_embedding_model:
            raise ConfigurationError(
                "OPENAI_EMBEDDING_MODEL must not be empty",
                provider_name="openai",
            )
        if self.embedding_dimension < 0:
            raise ConfigurationError(
                f"EMBEDDING_DIMENSION must be >= 0, got {self.embedding_dimension}"
            )
