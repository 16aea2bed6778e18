"""Models for document chunks."""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChunkModel(BaseModel):
    """A contiguous page range of a document.

    Page numbers are 1-based and inclusive. Every chunk after the first
    carries an overlap zone at its start, shared with the preceding chunk.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="0-based chunk index")
    page_start: int = Field(..., ge=1, description="First page (inclusive)")
    page_end: int = Field(..., ge=1, description="Last page (inclusive)")
    overlap_start: int | None = Field(None, ge=1, description="First overlap page")
    overlap_end: int | None = Field(None, ge=1, description="Last overlap page")
    text: str = Field(..., description="Chunk text, pages joined by the delimiter")
    total_chunks: int = Field(default=1, ge=1, description="Number of chunks in the document")

    @model_validator(mode="after")
    def _check_page_ranges(self) -> "ChunkModel":
        if self.page_start > self.page_end:
            raise ValueError("page_start must not exceed page_end")
        if (self.overlap_start is None) != (self.overlap_end is None):
            raise ValueError("overlap_start and overlap_end must be set together")
        if self.overlap_start is not None:
            if not (self.page_start <= self.overlap_start <= self.overlap_end < self.page_end):
                raise ValueError("overlap zone must lie inside the chunk and end before page_end")
        return self

    @property
    def has_overlap(self) -> bool:
        return self.overlap_start is not None

    @property
    def is_first_chunk(self) -> bool:
        return self.index == 0

    @property
    def is_last_chunk(self) -> bool:
        return self.index == self.total_chunks - 1

    @property
    def page_count(self) -> int:
        return self.page_end - self.page_start + 1

    @property
    def unique_page_count(self) -> int:
        """Pages in this chunk that are not shared with the previous chunk."""
        if not self.has_overlap:
            return self.page_count
        return self.page_count - (self.overlap_end - self.overlap_start + 1)

    def is_overlap_page(self, page: int) -> bool:
        """Whether an absolute page number falls in this chunk's overlap zone."""
        if not self.has_overlap:
            return False
        return self.overlap_start <= page <= self.overlap_end

    def contains_page(self, page: int) -> bool:
        return self.page_start <= page <= self.page_end

    @property
    def label(self) -> str:
        overlap = f", overlap {self.overlap_start}-{self.overlap_end}" if self.has_overlap else ""
        return f"Chunk[{self.index + 1}/{self.total_chunks}, pages {self.page_start}-{self.page_end}{overlap}]"
