"""Critic review models."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .enums import IssueSeverity


class ReviewIssue(BaseModel):
    """A single problem the critic found in the extraction output."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rule_id: str | None = Field(
        None,
        validation_alias=AliasChoices("rule_id", "ruleId"),
        serialization_alias="ruleId",
        description="Identifier of the violated rule",
    )
    severity: IssueSeverity = Field(default=IssueSeverity.MINOR, description="Issue severity")
    record_id: int | None = Field(
        None,
        validation_alias=AliasChoices("record_id", "personId", "person_id", "id"),
        serialization_alias="personId",
        description="Record the issue refers to",
    )
    description: str = Field(default="", description="What is wrong")
    expected_behavior: str | None = Field(
        None,
        validation_alias=AliasChoices("expected_behavior", "expectedBehavior"),
        serialization_alias="expectedBehavior",
        description="What the output should look like",
    )

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in {s.value for s in IssueSeverity}:
                return IssueSeverity.MINOR
        return value

    @field_validator("record_id", mode="before")
    @classmethod
    def _coerce_record_id(cls, value):
        if isinstance(value, str):
            return int(value) if value.strip().isdigit() else None
        return value


class ReviewResult(BaseModel):
    """Critic verdict on an extraction output."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("score", "extraction_score"),
        serialization_alias="extraction_score",
        description="Quality score in [0, 1]",
    )
    issues: list[ReviewIssue] = Field(default_factory=list, description="Issues found")
    summary: str | None = Field(None, description="Free-text summary")

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        if value is None:
            return 0.0
        value = float(value)
        return min(1.0, max(0.0, value))

    @property
    def is_clean(self) -> bool:
        return not self.issues

    @property
    def critical_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == IssueSeverity.CRITICAL)

    def meets(self, threshold: float) -> bool:
        return self.score >= threshold

    def to_state_json(self) -> str:
        """Serialize in the critic's wire format."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def empty(cls) -> "ReviewResult":
        """Default review seeded before the refinement loop runs."""
        return cls(score=0.0, issues=[], summary="No review performed")
