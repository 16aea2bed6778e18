"""LLM access and step invocation."""

from .client import OllamaOptions, create_step_llm
from .invoker import CompositeStepInvoker, LLMChainError, LLMStepInvoker, LocalStepInvoker, StepInvoker
from .json_parsing import ensure_json, loads_or_none, normalize_json, parse_json_response

__all__ = [
    "OllamaOptions",
    "create_step_llm",
    "CompositeStepInvoker",
    "LLMChainError",
    "LLMStepInvoker",
    "LocalStepInvoker",
    "StepInvoker",
    "ensure_json",
    "loads_or_none",
    "normalize_json",
    "parse_json_response",
]
