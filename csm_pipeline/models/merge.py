"""Models for cross-chunk merge results."""

from pydantic import BaseModel, ConfigDict, Field


class MergeStats(BaseModel):
    """Bookkeeping from merging per-chunk results. Informational only."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_chunks: int = Field(default=0, ge=0, alias="totalChunks")
    total_before: int = Field(default=0, ge=0, alias="totalCandidatesBeforeMerge")
    total_after: int = Field(default=0, ge=0, alias="totalCandidatesAfterMerge")
    duplicates_removed: int = Field(default=0, ge=0, alias="duplicatesRemoved")
    overlap_duplicates: int = Field(default=0, ge=0, alias="overlapDuplicates")


class MergedResult(BaseModel):
    """Output of the chunk merge step."""

    model_config = ConfigDict(extra="allow")

    merged_candidates: list[dict] = Field(default_factory=list)
    global_source_classification: list[dict] = Field(default_factory=list)
    merge_stats: MergeStats | None = None
