"""Knowledge ingestion pipeline.

Orchestrates: **classify -> persist document -> chunk -> embed -> store**.

1. **Classify** (content_classifier.py / ContentClassifier) -- decides
   whether content is a PDF, another binary or text, decodes base64 and
   extracts the text to index.

2. **Chunk** (chunker.py / TextChunker) -- splits the text into
   overlapping token windows (1500 tokens, 200 overlap by default).

3. **Identify** (identity.py) -- deterministic document ids and fresh
   fragment ids.

4. **Embed + store** (knowledge_service.py / KnowledgeService) -- embeds
   fragments under the shared concurrency gate and persists them after
   their document.

docs_loader.py bulk-loads a directory through the same path.
"""

from knowledge_rag.services.ingestion.chunker import TextChunker
from knowledge_rag.services.ingestion.content_classifier import (
    ClassifiedContent,
    ContentClassifier,
    ContentKind,
    is_binary_content_type,
)
from knowledge_rag.services.ingestion.docs_loader import load_docs_from_path
from knowledge_rag.services.ingestion.knowledge_service import KnowledgeService

__all__ = [
    "ClassifiedContent",
    "ContentClassifier",
    "ContentKind",
    "KnowledgeService",
    "TextChunker",
    "is_binary_content_type",
    "load_docs_from_path",
]
