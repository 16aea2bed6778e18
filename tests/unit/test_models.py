"""Unit tests for Pydantic models."""

import json

import pytest
from pydantic import ValidationError

from csm_pipeline.models import (
    ChunkModel,
    ErrorSeverity,
    ExtractedRecord,
    ExtractionOutput,
    IssueSeverity,
    MergeStats,
    PipelineResult,
    ProcessingError,
    ReviewIssue,
    ReviewResult,
)


class TestChunkModel:
    """Tests for ChunkModel."""

    def test_first_chunk(self):
        chunk = ChunkModel(index=0, page_start=1, page_end=20, text="...", total_chunks=3)

        assert chunk.is_first_chunk
        assert not chunk.is_last_chunk
        assert not chunk.has_overlap
        assert chunk.page_count == 20
        assert chunk.unique_page_count == 20
        assert chunk.label == "Chunk[1/3, pages 1-20]"

    def test_chunk_with_overlap(self):
        chunk = ChunkModel(
            index=1, page_start=16, page_end=35, overlap_start=16, overlap_end=20, text="...", total_chunks=2
        )

        assert chunk.is_last_chunk
        assert chunk.unique_page_count == 15
        assert chunk.is_overlap_page(18)
        assert not chunk.is_overlap_page(21)
        assert chunk.contains_page(35)
        assert not chunk.contains_page(15)
        assert chunk.label == "Chunk[2/2, pages 16-35, overlap 16-20]"

    def test_page_range_must_be_ordered(self):
        with pytest.raises(ValidationError):
            ChunkModel(index=0, page_start=10, page_end=5, text="")

    def test_overlap_fields_set_together(self):
        with pytest.raises(ValidationError):
            ChunkModel(index=1, page_start=16, page_end=35, overlap_start=16, text="")

    def test_overlap_must_end_before_chunk_end(self):
        with pytest.raises(ValidationError):
            ChunkModel(index=1, page_start=16, page_end=20, overlap_start=16, overlap_end=20, text="")

    def test_chunk_is_immutable(self):
        chunk = ChunkModel(index=0, page_start=1, page_end=2, text="")
        with pytest.raises(ValidationError):
            chunk.page_end = 5


class TestReviewResult:
    """Tests for ReviewResult and ReviewIssue."""

    def test_critic_wire_format(self):
        review = ReviewResult.model_validate({
            "extraction_score": 0.72,
            "issues": [
                {
                    "ruleId": "R1",
                    "severity": "CRITICAL",
                    "personId": "3",
                    "description": "Missing title",
                    "expectedBehavior": "Set jobTitle",
                }
            ],
            "summary": "One problem",
            "unexpected": True,
        })

        assert review.score == 0.72
        assert review.critical_count == 1
        issue = review.issues[0]
        assert issue.rule_id == "R1"
        assert issue.record_id == 3
        assert issue.severity == IssueSeverity.CRITICAL
        assert issue.expected_behavior == "Set jobTitle"

    def test_score_is_clamped(self):
        assert ReviewResult(score=1.7).score == 1.0
        assert ReviewResult(score=-0.3).score == 0.0
        assert ReviewResult(score=None).score == 0.0

    def test_unknown_severity_becomes_minor(self):
        issue = ReviewIssue.model_validate({"severity": "blocker", "description": "x"})
        assert issue.severity == IssueSeverity.MINOR

    def test_non_numeric_record_id_dropped(self):
        issue = ReviewIssue.model_validate({"personId": "n/a"})
        assert issue.record_id is None

    def test_meets_threshold(self):
        review = ReviewResult(score=0.85)
        assert review.meets(0.85)
        assert not review.meets(0.9)
        assert review.is_clean

    def test_state_json_uses_wire_names(self):
        review = ReviewResult(score=0.5, issues=[ReviewIssue(rule_id="R2", record_id=1, description="d")])
        data = json.loads(review.to_state_json())

        assert data["extraction_score"] == 0.5
        assert data["issues"][0]["ruleId"] == "R2"
        assert data["issues"][0]["personId"] == 1

    def test_empty_review(self):
        review = ReviewResult.empty()
        assert review.score == 0.0
        assert review.issues == []
        assert review.summary == "No review performed"


class TestExtractionOutput:
    """Tests for the output models."""

    def test_blank_optional_fields_become_null(self):
        record = ExtractedRecord(id=1, firstName="Jane", middleName="  ", lastName="Doe", jobTitle="")

        assert record.middleName is None
        assert record.jobTitle is None
        assert record.full_name == "Jane Doe"

    def test_ids_start_at_one(self):
        with pytest.raises(ValidationError):
            ExtractedRecord(id=0, firstName="Jane", lastName="Doe")

    def test_counts(self):
        output = ExtractionOutput(extracted_records=[
            ExtractedRecord(id=1, firstName="A", lastName="B", isCsm=True),
            ExtractedRecord(id=2, firstName="C", lastName="D"),
        ])

        assert output.size == 2
        assert output.csm_count == 1

    def test_empty_output_json(self):
        assert json.loads(ExtractionOutput.empty().to_json()) == {"extracted_records": []}


class TestMergeStats:
    """Tests for MergeStats."""

    def test_accepts_wire_names(self):
        stats = MergeStats.model_validate({
            "totalChunks": 3,
            "totalCandidatesBeforeMerge": 10,
            "totalCandidatesAfterMerge": 8,
            "duplicatesRemoved": 2,
            "overlapDuplicates": 2,
        })

        assert stats.total_chunks == 3
        assert stats.duplicates_removed == 2
        assert stats.model_dump(by_alias=True)["totalCandidatesAfterMerge"] == 8

    def test_accepts_field_names(self):
        assert MergeStats(total_before=4, total_after=3).total_before == 4


class TestProcessingError:
    """Tests for ProcessingError."""

    def test_create_generates_id(self):
        error = ProcessingError.create(stage="map", message="boom", details={"chunk_index": 2})

        assert error.error_id.startswith("map_err_")
        assert error.severity == ErrorSeverity.ERROR
        assert error.recoverable

    def test_critical_error_fails_result(self):
        result = PipelineResult(
            final_output="{}",
            path="direct",
            errors=[ProcessingError.create(stage="tail", message="x", severity=ErrorSeverity.CRITICAL)],
        )
        assert not result.succeeded
