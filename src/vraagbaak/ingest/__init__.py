"""Ingestion pipeline: extraction, chunking, and the per-file orchestrator."""

from vraagbaak.ingest.chunker import TextChunker, chunk
from vraagbaak.ingest.extract import extract_text
from vraagbaak.ingest.pipeline import (
    FileState,
    FileSummary,
    IngestOrchestrator,
    IngestReport,
    UploadedFile,
)

__all__ = [
    "FileState",
    "FileSummary",
    "IngestOrchestrator",
    "IngestReport",
    "TextChunker",
    "UploadedFile",
    "chunk",
    "extract_text",
]
