"""Unit tests for parse_path_header -- metadata from a leading ``Path:`` line."""

from __future__ import annotations

from knowledge_rag.services.ingestion.knowledge_service import parse_path_header


def test_no_header() -> None:
    assert parse_path_header("Just some knowledge.") == {}


def test_header_must_lead() -> None:
    assert parse_path_header("Intro line.\nPath: docs/a.md\nBody.") == {}


def test_nested_markdown_path() -> None:
    text = "Path: docs/guides/setup.md\nInstall first."
    meta = parse_path_header(text)
    assert meta == {
        "path": "docs/guides/setup.md",
        "filename": "setup.md",
        "file_ext": "md",
        "title": "setup",
        "file_type": "text/md",
        "file_size": len(text),
    }


def test_extensionless_file() -> None:
    meta = parse_path_header("Path: README\r\nRead me.")
    assert meta["filename"] == "README"
    assert meta["title"] == "README"
    assert meta["file_ext"] == ""
    assert meta["file_type"] == "text/plain"
