"""Unit tests for step invokers."""

import json

import pytest

from csm_pipeline.config.settings import Settings
from csm_pipeline.errors import ConfigurationError, MergeError, StepInvocationError
from csm_pipeline.llm.client import OllamaOptions
from csm_pipeline.llm.invoker import CompositeStepInvoker, LLMStepInvoker, LocalStepInvoker
from tests.conftest import FakeStepInvoker


@pytest.fixture
def llm_invoker() -> LLMStepInvoker:
    """Invoker with retries that do not sleep."""
    return LLMStepInvoker(
        options=OllamaOptions(model_name="primary-model", fallback_model_name="fallback-model"),
        max_retries=3,
        min_wait_seconds=0,
        max_wait_seconds=0,
    )


class TestOllamaOptions:
    """Tests for model options."""

    def test_built_from_settings(self):
        settings = Settings(llm_model_name="primary-model", llm_fallback_model_name="fallback-model", llm_num_ctx=4096)

        options = OllamaOptions.from_settings(settings)

        assert options.model_for(use_fallback=False) == "primary-model"
        assert options.model_for(use_fallback=True) == "fallback-model"
        assert options.num_ctx == 4096

    def test_invoker_uses_both_models(self, llm_invoker):
        assert llm_invoker._primary.model == "primary-model"
        assert llm_invoker._fallback.model == "fallback-model"


class TestLLMStepInvoker:
    """Tests for LLMStepInvoker with the chain call replaced."""

    def test_output_keyed_by_state_name(self, llm_invoker, monkeypatch):
        monkeypatch.setattr(
            llm_invoker,
            "_invoke_with_fallback",
            lambda prompt, variables, name: ('```json\n{"raw_candidates": []}\n```', "primary-model"),
        )

        result = llm_invoker.invoke("csm-candidate-extractor", {"sourceText": "t", "fileNames": "[]"})

        assert result == {"rawNames": json.dumps({"raw_candidates": []})}

    def test_unparsable_response_is_retried(self, llm_invoker, monkeypatch):
        responses = iter(["no json here", '{"source_classification": []}'])
        monkeypatch.setattr(
            llm_invoker,
            "_invoke_with_fallback",
            lambda prompt, variables, name: (next(responses), "primary-model"),
        )

        result = llm_invoker.invoke("csm-source-classifier", {"sourceText": "t", "fileNames": "[]"})

        assert json.loads(result["sourceClassification"]) == {"source_classification": []}

    def test_exhausted_retries_raise(self, llm_invoker, monkeypatch):
        calls = []

        def always_fails(prompt, variables, name):
            calls.append(name)
            raise ConnectionError("ollama unavailable")

        monkeypatch.setattr(llm_invoker, "_invoke_with_fallback", always_fails)

        with pytest.raises(StepInvocationError) as exc_info:
            llm_invoker.invoke("csm-scoring-engine", {"classifiedCandidates": "{}"})

        assert exc_info.value.step == "csm-scoring-engine"
        assert exc_info.value.attempts == 3
        assert len(calls) == 3

    def test_unknown_step(self, llm_invoker):
        with pytest.raises(StepInvocationError):
            llm_invoker.invoke("csm-unknown", {})

    def test_retry_count_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            LLMStepInvoker(max_retries=0)


class TestLocalStepInvoker:
    """Tests for LocalStepInvoker and CompositeStepInvoker."""

    def test_local_handler_output(self):
        local = LocalStepInvoker({"csm-overlay-merger": lambda inputs: '{"enriched_candidates": []}'})

        assert local.handles("csm-overlay-merger")
        assert local.invoke("csm-overlay-merger", {}) == {"enrichedCandidates": '{"enriched_candidates": []}'}

    def test_pipeline_error_becomes_step_failure(self):
        def broken(inputs):
            raise MergeError("nothing to merge")

        local = LocalStepInvoker({"csm-chunk-merger": broken})

        with pytest.raises(StepInvocationError) as exc_info:
            local.invoke("csm-chunk-merger", {})
        assert exc_info.value.step == "csm-chunk-merger"

    def test_composite_routes_by_step(self):
        delegate = FakeStepInvoker({"csm-reason-assembler": '{"candidates": []}'})
        composite = CompositeStepInvoker(
            LocalStepInvoker({"csm-overlay-merger": lambda inputs: "{}"}),
            delegate,
        )

        assert composite.invoke("csm-overlay-merger", {}) == {"enrichedCandidates": "{}"}
        assert composite.invoke("csm-reason-assembler", {}) == {"reasonedCandidates": '{"candidates": []}'}
        assert delegate.step_names == ["csm-reason-assembler"]
