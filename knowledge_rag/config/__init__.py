"""Configuration module -- exports Settings and a module-level singleton."""

from knowledge_rag.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "settings"]
