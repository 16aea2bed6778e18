"""Document loading and chunking."""

from .chunker import ChunkingConfig, DocumentChunker, chunk_document, estimate_tokens
from .pdf_extractor import PDFExtractionError, extract_document_text, extract_pdf_pages

__all__ = [
    "ChunkingConfig",
    "DocumentChunker",
    "chunk_document",
    "estimate_tokens",
    "PDFExtractionError",
    "extract_document_text",
    "extract_pdf_pages",
]
