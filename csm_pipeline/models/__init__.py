"""Pydantic data models for the pipeline."""

from .enums import ErrorSeverity, ExecutionPath, IssueSeverity, MergeStrategy
from .chunking import ChunkModel
from .merge import MergedResult, MergeStats
from .output import OPTIONAL_TEXT_FIELDS, ExtractedRecord, ExtractionOutput
from .report import PipelineResult, ProcessingError
from .review import ReviewIssue, ReviewResult

__all__ = [
    # Enums
    "ErrorSeverity",
    "ExecutionPath",
    "IssueSeverity",
    "MergeStrategy",
    # Chunking
    "ChunkModel",
    # Merge
    "MergeStats",
    "MergedResult",
    # Output
    "OPTIONAL_TEXT_FIELDS",
    "ExtractedRecord",
    "ExtractionOutput",
    # Review
    "ReviewIssue",
    "ReviewResult",
    # Report
    "ProcessingError",
    "PipelineResult",
]
