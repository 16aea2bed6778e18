"""Run report models."""

import uuid

from pydantic import BaseModel, Field

from .enums import ErrorSeverity, ExecutionPath
from .merge import MergeStats
from .review import ReviewResult


class ProcessingError(BaseModel):
    """Record of a processing error or warning."""

    error_id: str = Field(..., description="Unique error identifier")
    severity: ErrorSeverity = Field(..., description="Error severity level")
    stage: str = Field(..., description="Pipeline stage where error occurred")
    message: str = Field(..., description="Error message")
    details: dict | None = Field(None, description="Additional error details")
    recoverable: bool = Field(default=True, description="Whether processing continued")

    @classmethod
    def create(
        cls,
        stage: str,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: dict | None = None,
        recoverable: bool = True,
    ) -> "ProcessingError":
        return cls(
            error_id=f"{stage}_err_{uuid.uuid4().hex[:8]}",
            severity=severity,
            stage=stage,
            message=message,
            details=details,
            recoverable=recoverable,
        )


class PipelineResult(BaseModel):
    """Final output of a run plus the metadata surfaced alongside it."""

    final_output: str = Field(..., description="Final output JSON string")
    path: ExecutionPath = Field(..., description="Route taken through the controller")
    review: ReviewResult = Field(default_factory=ReviewResult.empty)
    quality_met: bool = Field(default=False, description="Whether the critic threshold was reached")
    refinement_iterations: int = Field(default=0, ge=0)
    critic_calls: int = Field(default=0, ge=0)
    chunk_count: int = Field(default=1, ge=0)
    batch_count: int = Field(default=1, ge=0)
    merge_stats: MergeStats | None = None
    step_calls: int = Field(default=0, ge=0, description="Number of step invocations made")
    duration_seconds: float = Field(default=0.0, ge=0)

    errors: list[ProcessingError] = Field(default_factory=list)
    warnings: list[ProcessingError] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not any(e.severity == ErrorSeverity.CRITICAL for e in self.errors)
