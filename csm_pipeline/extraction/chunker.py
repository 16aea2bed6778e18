"""Page-based document chunking with overlap."""

import math
import re
from dataclasses import dataclass

import structlog

from csm_pipeline.errors import ConfigurationError
from csm_pipeline.models import ChunkModel

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_DELIMITER = "\f"

# Words per token used by the whitespace token estimate
WORDS_PER_TOKEN = 0.75


@dataclass
class ChunkingConfig:
    """Configuration for document chunking."""

    pages_per_chunk: int = 20
    overlap_pages: int = 5
    page_delimiter: str = DEFAULT_PAGE_DELIMITER

    def validate(self) -> None:
        """Raise ConfigurationError for unusable parameters."""
        if self.pages_per_chunk < 2:
            raise ConfigurationError(f"pages_per_chunk must be >= 2, got {self.pages_per_chunk}")
        if self.overlap_pages < 0:
            raise ConfigurationError(f"overlap_pages must be >= 0, got {self.overlap_pages}")
        if self.overlap_pages >= self.pages_per_chunk:
            raise ConfigurationError(
                f"overlap_pages ({self.overlap_pages}) must be smaller than "
                f"pages_per_chunk ({self.pages_per_chunk})"
            )
        if not self.page_delimiter:
            raise ConfigurationError("page_delimiter must not be empty")
        try:
            re.compile(self.page_delimiter)
        except re.error as e:
            raise ConfigurationError(f"Invalid page delimiter pattern {self.page_delimiter!r}: {e}") from e

    @property
    def stride(self) -> int:
        return self.pages_per_chunk - self.overlap_pages


def estimate_tokens(text: str) -> int:
    """Estimate the token count of text from its whitespace-separated words.

    Args:
        text: Text to estimate.

    Returns:
        ceil(words / 0.75), or 0 for blank text.
    """
    if not text or not text.strip():
        return 0
    return math.ceil(len(text.split()) / WORDS_PER_TOKEN)


class DocumentChunker:
    """Splits page-delimited text into overlapping page windows."""

    def __init__(self, config: ChunkingConfig | None = None):
        self.config = config or ChunkingConfig()
        self.config.validate()
        self._pattern = re.compile(self.config.page_delimiter)
        # A delimiter that matches itself can be used to rejoin pages
        if self._pattern.fullmatch(self.config.page_delimiter):
            self._joiner = self.config.page_delimiter
        else:
            self._joiner = DEFAULT_PAGE_DELIMITER

    @classmethod
    def create(
        cls,
        pages_per_chunk: int = 20,
        overlap_pages: int = 5,
        page_delimiter: str = DEFAULT_PAGE_DELIMITER,
    ) -> "DocumentChunker":
        return cls(ChunkingConfig(pages_per_chunk, overlap_pages, page_delimiter))

    def needs_chunking(self, text: str, token_budget: int) -> bool:
        """Whether the document's estimated size exceeds the token budget."""
        if not text or not text.strip():
            return False
        return estimate_tokens(text) > token_budget

    def split_pages(self, text: str) -> list[str]:
        """Split text into stripped, non-empty pages.

        Text without any delimiter is treated as a single page.
        """
        if not text or not text.strip():
            return []
        pages = [p.strip() for p in self._pattern.split(text)]
        pages = [p for p in pages if p]
        if not pages:
            pages = [text.strip()]
        return pages

    def chunk(self, text: str) -> list[ChunkModel]:
        """Chunk a document into overlapping page windows.

        Args:
            text: Full document text with pages separated by the delimiter.

        Returns:
            Chunks ordered by index, all carrying the same total_chunks.
        """
        pages = self.split_pages(text)

        if not pages:
            logger.debug("chunking_blank_document")
            return [ChunkModel(index=0, page_start=1, page_end=1, text="", total_chunks=1)]

        ppc = self.config.pages_per_chunk
        overlap = self.config.overlap_pages

        if len(pages) <= ppc:
            return [
                ChunkModel(
                    index=0,
                    page_start=1,
                    page_end=len(pages),
                    text=self._joiner.join(pages),
                    total_chunks=1,
                )
            ]

        windows: list[dict] = []
        start = 0
        while start < len(pages):
            end = min(start + ppc, len(pages))
            window = {
                "index": len(windows),
                "page_start": start + 1,
                "page_end": end,
                "text": self._joiner.join(pages[start:end]),
            }
            if windows and overlap > 0:
                window["overlap_start"] = start + 1
                window["overlap_end"] = min(start + overlap, end)
            windows.append(window)
            if end >= len(pages):
                break
            start += self.config.stride

        chunks = [ChunkModel(**w, total_chunks=len(windows)) for w in windows]

        logger.info(
            "document_chunked",
            total_pages=len(pages),
            total_chunks=len(chunks),
            pages_per_chunk=ppc,
            overlap_pages=overlap,
        )

        return chunks


def chunk_document(text: str, config: ChunkingConfig | None = None) -> list[ChunkModel]:
    """Chunk a document with the given configuration.

    Args:
        text: Page-delimited document text.
        config: Chunking configuration. Uses defaults if not provided.

    Returns:
        List of ChunkModel objects.
    """
    return DocumentChunker(config).chunk(text)
