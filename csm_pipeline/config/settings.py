"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from csm_pipeline.errors import ConfigurationError
from csm_pipeline.models.enums import MergeStrategy


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Ollama LLM Configuration
    llm_ollama_base_url: str = "http://localhost:11434"
    llm_model_name: str = "gpt-oss:20b"
    llm_fallback_model_name: str = "gemma3:latest"
    llm_temperature: float = 0.0
    llm_request_timeout: int = 120
    llm_num_ctx: int = 32768
    llm_num_predict: int = 8192

    # Routing and Chunking Configuration
    chunking_enabled: bool = True
    token_budget: int = 100_000
    pages_per_chunk: int = 20
    overlap_pages: int = 5
    page_delimiter_pattern: str = "\f"

    # Batching Configuration
    batching_enabled: bool = True
    batch_size: int = 50

    # Refinement Configuration
    max_refinement_iterations: int = 3
    quality_threshold: float = 0.85

    # Processing Configuration
    max_retries: int = 3
    retry_min_wait_seconds: float = 2.0
    retry_max_wait_seconds: float = 30.0
    retry_deadline_seconds: float = 600.0
    max_workers: int = 1
    merge_strategy: MergeStrategy = MergeStrategy.LLM

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class ControllerConfig(BaseModel):
    """Validated, immutable controller configuration.

    Built once per controller. Any invalid value raises ConfigurationError
    so a run never starts with parameters the chunker, batcher or loop
    would reject halfway through.
    """

    model_config = ConfigDict(frozen=True)

    chunking_enabled: bool = True
    token_budget: int = Field(default=100_000, ge=1)
    pages_per_chunk: int = Field(default=20, ge=2)
    overlap_pages: int = Field(default=5, ge=0)
    page_delimiter_pattern: str = Field(default="\f", min_length=1)
    batching_enabled: bool = True
    batch_size: int = Field(default=50, ge=1)
    max_refinement_iterations: int = Field(default=3, ge=0)
    quality_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_workers: int = Field(default=1, ge=1)
    merge_strategy: MergeStrategy = MergeStrategy.LLM

    @model_validator(mode="after")
    def _check_overlap(self) -> "ControllerConfig":
        if self.overlap_pages >= self.pages_per_chunk:
            raise ValueError("overlap_pages must be smaller than pages_per_chunk")
        return self

    @classmethod
    def build(cls, **values) -> "ControllerConfig":
        """Validate values, raising ConfigurationError instead of ValidationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid controller configuration: {e}") from e

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ControllerConfig":
        settings = settings or get_settings()
        return cls.build(
            chunking_enabled=settings.chunking_enabled,
            token_budget=settings.token_budget,
            pages_per_chunk=settings.pages_per_chunk,
            overlap_pages=settings.overlap_pages,
            page_delimiter_pattern=settings.page_delimiter_pattern,
            batching_enabled=settings.batching_enabled,
            batch_size=settings.batch_size,
            max_refinement_iterations=settings.max_refinement_iterations,
            quality_threshold=settings.quality_threshold,
            max_workers=settings.max_workers,
            merge_strategy=settings.merge_strategy,
        )
