"""Step invokers: the seam between the controller and inference steps."""

from collections.abc import Callable, Mapping
from typing import Protocol

import structlog
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from tenacity import Retrying, stop_after_attempt, stop_after_delay, wait_exponential

from csm_pipeline.config.prompts import STEP_PROMPTS
from csm_pipeline.config.settings import Settings, get_settings
from csm_pipeline.config.steps import STEP_CATALOG, StepSpec
from csm_pipeline.errors import ConfigurationError, MissingStateError, PipelineError, StepInvocationError
from csm_pipeline.llm.client import OllamaOptions, create_step_llm
from csm_pipeline.llm.json_parsing import normalize_json

logger = structlog.get_logger(__name__)

LocalHandler = Callable[[dict[str, str]], str]


class LLMChainError(Exception):
    """Error during LLM chain execution."""

    pass


class StepInvoker(Protocol):
    """Runs one named step.

    Inputs and outputs are JSON strings keyed by state name. The returned
    mapping holds the step's single declared output.
    """

    def invoke(self, step_name: str, inputs: dict[str, str]) -> dict[str, str]:
        ...


def _lookup(catalog: Mapping[str, StepSpec], step_name: str) -> StepSpec:
    spec = catalog.get(step_name)
    if spec is None:
        raise StepInvocationError(step_name, "unknown step")
    return spec


class LLMStepInvoker:
    """Runs steps as prompt | OllamaLLM | StrOutputParser chains.

    Empty responses from the primary model are retried once on the fallback
    model. Failed attempts are retried with exponential backoff, bounded by
    an attempt count and a total delay.
    """

    def __init__(
        self,
        options: OllamaOptions | None = None,
        catalog: Mapping[str, StepSpec] = STEP_CATALOG,
        prompts: Mapping[str, tuple[str, str]] = STEP_PROMPTS,
        max_retries: int = 3,
        min_wait_seconds: float = 2.0,
        max_wait_seconds: float = 30.0,
        deadline_seconds: float = 600.0,
    ):
        if max_retries < 1:
            raise ConfigurationError(f"max_retries must be >= 1, got {max_retries}")
        self.catalog = catalog
        self.prompts = prompts
        self.max_retries = max_retries
        self.min_wait_seconds = min_wait_seconds
        self.max_wait_seconds = max_wait_seconds
        self.deadline_seconds = deadline_seconds
        self._primary = create_step_llm(options, use_fallback=False)
        self._fallback = create_step_llm(options, use_fallback=True)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LLMStepInvoker":
        settings = settings or get_settings()
        return cls(
            options=OllamaOptions.from_settings(settings),
            max_retries=settings.max_retries,
            min_wait_seconds=settings.retry_min_wait_seconds,
            max_wait_seconds=settings.retry_max_wait_seconds,
            deadline_seconds=settings.retry_deadline_seconds,
        )

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_retries) | stop_after_delay(self.deadline_seconds),
            wait=wait_exponential(multiplier=1, min=self.min_wait_seconds, max=self.max_wait_seconds),
            reraise=True,
        )

    def invoke(self, step_name: str, inputs: dict[str, str]) -> dict[str, str]:
        spec = _lookup(self.catalog, step_name)
        if step_name not in self.prompts:
            raise StepInvocationError(step_name, "no prompt template registered")

        system_prompt, user_prompt = self.prompts[step_name]
        prompt = ChatPromptTemplate.from_messages([
            ("system", system_prompt),
            ("human", user_prompt),
        ])

        attempts = 0
        try:
            for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response, model_used = self._invoke_with_fallback(prompt, inputs, step_name)
                    output = response.strip() if spec.raw_output else normalize_json(response)
        except Exception as e:
            logger.error("step_failed", step=step_name, attempts=attempts, error=str(e))
            raise StepInvocationError(step_name, str(e), attempts) from e

        logger.debug(
            "step_complete",
            step=step_name,
            model_used=model_used,
            attempts=attempts,
            output_length=len(output),
        )
        return {spec.output: output}

    def _invoke_with_fallback(
        self,
        prompt: ChatPromptTemplate,
        variables: dict[str, str],
        context_name: str,
    ) -> tuple[str, str]:
        """Invoke the chain, switching to the fallback model on an empty response.

        Args:
            prompt: The ChatPromptTemplate to use.
            variables: Variables to pass to the prompt.
            context_name: Name for logging context.

        Returns:
            Tuple of (response_text, model_used).

        Raises:
            LLMChainError: If both primary and fallback return empty.
        """
        primary_model = self._primary.model
        response = (prompt | self._primary | StrOutputParser()).invoke(variables)

        if response and response.strip():
            logger.debug("llm_primary_success", step=context_name, model=primary_model, length=len(response))
            return response, primary_model

        fallback_model = self._fallback.model
        logger.warning(
            "llm_primary_empty_trying_fallback",
            step=context_name,
            primary_model=primary_model,
            fallback_model=fallback_model,
        )

        response = (prompt | self._fallback | StrOutputParser()).invoke(variables)

        if response and response.strip():
            logger.info("llm_fallback_success", step=context_name, model=fallback_model, length=len(response))
            return response, fallback_model

        raise LLMChainError(f"Both primary ({primary_model}) and fallback ({fallback_model}) returned empty responses")


class LocalStepInvoker:
    """Runs steps implemented in-process."""

    def __init__(self, handlers: Mapping[str, LocalHandler], catalog: Mapping[str, StepSpec] = STEP_CATALOG):
        self.handlers = dict(handlers)
        self.catalog = catalog

    def handles(self, step_name: str) -> bool:
        return step_name in self.handlers

    def invoke(self, step_name: str, inputs: dict[str, str]) -> dict[str, str]:
        spec = _lookup(self.catalog, step_name)
        handler = self.handlers.get(step_name)
        if handler is None:
            raise StepInvocationError(step_name, "no local handler registered")
        try:
            output = handler(inputs)
        except (ConfigurationError, MissingStateError):
            raise
        except PipelineError as e:
            raise StepInvocationError(step_name, str(e), attempts=1) from e
        return {spec.output: output}


class CompositeStepInvoker:
    """Routes local steps in-process and everything else to a delegate."""

    def __init__(self, local: LocalStepInvoker, delegate: StepInvoker):
        self.local = local
        self.delegate = delegate

    def invoke(self, step_name: str, inputs: dict[str, str]) -> dict[str, str]:
        if self.local.handles(step_name):
            return self.local.invoke(step_name, inputs)
        return self.delegate.invoke(step_name, inputs)
