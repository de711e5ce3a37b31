"""Bulk-load a directory of documents into the knowledge base.

Walks the directory recursively (hidden files and directories skipped),
encodes binary files as base64, and hands each file to
:meth:`KnowledgeService.add_knowledge`.  Document ids are derived from the
agent, the file's path relative to the root and a SHA-256 of its bytes, so
an unchanged file is skipped on the next run while an edited file is
ingested as a new document.
"""

from __future__ import annotations

import base64
import hashlib
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from knowledge_rag.models.knowledge import AddKnowledgeOptions, BatchResult
from knowledge_rag.services.ingestion.content_classifier import is_binary_content_type
from knowledge_rag.services.ingestion.identity import derive_document_id

if TYPE_CHECKING:
    from knowledge_rag.services.ingestion.knowledge_service import KnowledgeService

logger = structlog.get_logger(logger_name=__name__)


def _iter_files(root: Path) -> list[Path]:
    files = []
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_file():
            files.append(path)
    return files


async def load_docs_from_path(service: KnowledgeService, docs_path: str) -> BatchResult:
    """Ingest every file under *docs_path* and summarise the outcome.

    Files are processed one at a time; a failing file is logged and counted
    without stopping the rest.
    """
    root = Path(docs_path)
    if not root.is_dir():
        logger.warning("docs_path_not_found", path=docs_path)
        return BatchResult()

    files = _iter_files(root)
    logger.info("loading_docs", path=docs_path, files=len(files))

    successful = skipped = failed = 0
    errors: list[str] = []
    for file_path in files:
        relative = file_path.relative_to(root).as_posix()
        try:
            data = file_path.read_bytes()
            content_type = mimetypes.guess_type(file_path.name)[0] or "text/plain"
            if is_binary_content_type(content_type, file_path.name):
                content = base64.b64encode(data).decode("ascii")
            else:
                content = data.decode("utf-8", errors="replace")

            document_id = derive_document_id(
                service.agent_id, f"{relative}:{hashlib.sha256(data).hexdigest()}"
            )
            if await service.check_existing_knowledge(document_id):
                skipped += 1
                continue

            result = await service.add_knowledge(
                AddKnowledgeOptions(
                    client_document_id=document_id,
                    content_type=content_type,
                    original_filename=file_path.name,
                    content=content,
                    metadata={"source": "docs", "path": relative},
                )
            )
            successful += 1
            logger.debug("doc_loaded", path=relative, fragment_count=result.fragment_count)
        except Exception as exc:
            failed += 1
            errors.append(f"{relative}: {exc}")
            logger.error("doc_load_failed", path=relative, error=str(exc))

    logger.info(
        "docs_loaded",
        path=docs_path,
        successful=successful,
        skipped=skipped,
        failed=failed,
    )
    return BatchResult(successful=successful, skipped=skipped, failed=failed, errors=errors)
