"""Ollama models backing the inference steps."""

from langchain_ollama import OllamaLLM
from pydantic import BaseModel, ConfigDict, Field

from csm_pipeline.config.settings import Settings, get_settings


class OllamaOptions(BaseModel):
    """Connection and sampling options shared by the primary and fallback models."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "http://localhost:11434"
    model_name: str = "gpt-oss:20b"
    fallback_model_name: str = "gemma3:latest"
    temperature: float = Field(default=0.0, ge=0.0)
    request_timeout: int = Field(default=120, ge=1)
    num_ctx: int = 32768
    num_predict: int = 8192

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "OllamaOptions":
        settings = settings or get_settings()
        return cls(
            base_url=settings.llm_ollama_base_url,
            model_name=settings.llm_model_name,
            fallback_model_name=settings.llm_fallback_model_name,
            temperature=settings.llm_temperature,
            request_timeout=settings.llm_request_timeout,
            num_ctx=settings.llm_num_ctx,
            num_predict=settings.llm_num_predict,
        )

    def model_for(self, use_fallback: bool) -> str:
        return self.fallback_model_name if use_fallback else self.model_name


def create_step_llm(options: OllamaOptions | None = None, use_fallback: bool = False) -> OllamaLLM:
    """Build the model a step chain runs on.

    Responses are requested as plain text; JSON is recovered afterwards by
    json_parsing, since Ollama's JSON mode cuts long candidate lists short.

    Args:
        options: Connection and sampling options. Defaults come from Settings.
        use_fallback: Build the fallback model instead of the primary one.

    Returns:
        Configured OllamaLLM.
    """
    options = options or OllamaOptions.from_settings()

    return OllamaLLM(
        model=options.model_for(use_fallback),
        base_url=options.base_url,
        temperature=options.temperature,
        num_ctx=options.num_ctx,
        num_predict=options.num_predict,
        client_kwargs={"timeout": options.request_timeout},
    )
