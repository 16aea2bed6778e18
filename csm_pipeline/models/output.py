"""Final extraction output models."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

OPTIONAL_TEXT_FIELDS = ("middleName", "personalTitle", "jobTitle")


class ExtractedRecord(BaseModel):
    """One person in the final output."""

    model_config = ConfigDict(extra="allow")

    id: int = Field(..., ge=1, description="Sequential record id")
    firstName: str = Field(default="", description="Given name")
    middleName: str | None = Field(None, description="Middle name(s)")
    lastName: str = Field(default="", description="Family name")
    personalTitle: str | None = Field(None, description="Honorific, e.g. Dr.")
    jobTitle: str | None = Field(None, description="Governance role")
    documentName: str = Field(default="", description="Source document")
    pageNumber: int | None = Field(None, description="Page where the person appears")
    reason: str = Field(default="", description="Why the person was classified this way")
    isCsm: bool = Field(default=False, description="Whether the person is a CSM")

    @field_validator(*OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def full_name(self) -> str:
        parts = [self.firstName, self.middleName or "", self.lastName]
        return " ".join(p for p in parts if p)


class ExtractionOutput(BaseModel):
    """Top-level output document: {"extracted_records": [...]}."""

    extracted_records: list[ExtractedRecord] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.extracted_records)

    @property
    def csm_count(self) -> int:
        return sum(1 for r in self.extracted_records if r.isCsm)

    @classmethod
    def empty(cls) -> "ExtractionOutput":
        return cls(extracted_records=[])

    def to_json(self) -> str:
        return self.model_dump_json()
