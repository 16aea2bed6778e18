"""Unit tests for the pipeline state store and step runner."""

import json

import pytest

from csm_pipeline.config.steps import CANDIDATE_EXTRACTOR, NAME_NORMALIZER
from csm_pipeline.errors import MissingStateError, StepInvocationError
from csm_pipeline.pipeline.runner import StepRunner
from csm_pipeline.pipeline.state import PipelineState
from tests.conftest import FakeStepInvoker


class TestPipelineState:
    """Tests for PipelineState."""

    def test_read_missing_raises(self):
        state = PipelineState()

        with pytest.raises(MissingStateError) as exc_info:
            state.read("rawNames", step="csm-name-normalizer")

        assert exc_info.value.name == "rawNames"
        assert exc_info.value.step == "csm-name-normalizer"

    def test_non_string_values_are_json_encoded(self):
        state = PipelineState({"fileNames": ["a.pdf", "b.pdf"]})
        assert json.loads(state.read("fileNames")) == ["a.pdf", "b.pdf"]

    def test_seed_defaults_only_fills_gaps(self):
        state = PipelineState({"extractionReview": "existing"})
        seeded = state.seed_defaults({"extractionReview": "default", "finalOutput": "{}"})

        assert seeded == ["finalOutput"]
        assert state.read("extractionReview") == "existing"

    def test_overwritten_restores_previous_value(self):
        state = PipelineState({"sourceText": "full document"})

        with state.overwritten({"sourceText": "chunk text"}):
            assert state.read("sourceText") == "chunk text"

        assert state.read("sourceText") == "full document"

    def test_overwritten_removes_new_names(self):
        state = PipelineState()

        with state.overwritten({"normalizedCandidates": "[]"}):
            assert "normalizedCandidates" in state

        assert "normalizedCandidates" not in state

    def test_overwritten_restores_on_exception(self):
        state = PipelineState({"sourceText": "full document"})

        with pytest.raises(RuntimeError):
            with state.overwritten({"sourceText": "chunk text"}):
                raise RuntimeError("step failed")

        assert state.read("sourceText") == "full document"

    def test_preserved_discards_writes(self):
        state = PipelineState({"rawNames": "before"})

        with state.preserved(["rawNames", "normalizedCandidates"]):
            state.write("rawNames", "during")
            state.write("normalizedCandidates", "during")

        assert state.read("rawNames") == "before"
        assert "normalizedCandidates" not in state

    def test_clone_is_independent(self):
        state = PipelineState({"sourceText": "doc"})
        clone = state.clone()
        clone.write("sourceText", "changed")

        assert state.read("sourceText") == "doc"


class TestStepRunner:
    """Tests for StepRunner."""

    def test_runs_step_and_writes_output(self):
        invoker = FakeStepInvoker({"csm-candidate-extractor": '{"raw_candidates": []}'})
        state = PipelineState({"sourceText": "text", "fileNames": "[]"})
        runner = StepRunner(invoker)

        output = runner.run(CANDIDATE_EXTRACTOR, state)

        assert output == '{"raw_candidates": []}'
        assert state.read("rawNames") == output
        assert invoker.calls == [("csm-candidate-extractor", {"sourceText": "text", "fileNames": "[]"})]
        assert runner.calls == 1

    def test_missing_input_raises_before_invoking(self):
        invoker = FakeStepInvoker()
        runner = StepRunner(invoker)

        with pytest.raises(MissingStateError) as exc_info:
            runner.run(NAME_NORMALIZER, PipelineState({"rawNames": "{}"}))

        assert exc_info.value.name == "sourceClassification"
        assert invoker.calls == []

    def test_unexpected_invoker_error_wrapped(self):
        runner = StepRunner(FakeStepInvoker({"csm-candidate-extractor": ValueError("bad response")}))

        with pytest.raises(StepInvocationError) as exc_info:
            runner.run(CANDIDATE_EXTRACTOR, PipelineState({"sourceText": "t", "fileNames": "[]"}))

        assert exc_info.value.step == "csm-candidate-extractor"

    def test_missing_output_raises(self):
        class SilentInvoker:
            def invoke(self, step_name, inputs):
                return {}

        with pytest.raises(StepInvocationError):
            StepRunner(SilentInvoker()).run(CANDIDATE_EXTRACTOR, PipelineState({"sourceText": "t", "fileNames": "[]"}))
