"""Unit tests for the step catalog and plan validation."""

import pytest

from csm_pipeline.config.steps import (
    ALL_STEPS,
    CLASSIFIER,
    DEDUP_LINKER,
    MAP_STEPS,
    OUTPUT_FORMATTER,
    REDUCE_STEPS,
    RUN_INPUTS,
    STEP_CATALOG,
    TAIL_STEPS,
    validate_sequence,
)
from csm_pipeline.config.prompts import STEP_PROMPTS
from csm_pipeline.errors import ConfigurationError
from csm_pipeline.pipeline.graph import validate_plan


class TestStepCatalog:
    """Tests for the step catalog."""

    def test_names_unique(self):
        assert len(STEP_CATALOG) == len(ALL_STEPS)

    def test_every_remote_step_has_a_prompt(self):
        remote = {s.name for s in ALL_STEPS if not s.local}
        assert remote <= set(STEP_PROMPTS)

    def test_prompts_reference_declared_inputs(self):
        for step in ALL_STEPS:
            if step.local:
                continue
            _, user_prompt = STEP_PROMPTS[step.name]
            for name in step.inputs:
                assert "{" + name + "}" in user_prompt, (step.name, name)

    def test_only_critic_keeps_raw_text(self):
        assert [s.name for s in ALL_STEPS if s.raw_output] == ["csm-extraction-critic"]


class TestValidateSequence:
    """Tests for validate_sequence."""

    def test_default_direct_path_is_valid(self):
        produced = validate_sequence(MAP_STEPS + REDUCE_STEPS + TAIL_STEPS, RUN_INPUTS)
        assert "finalOutput" in produced

    def test_unproduced_input_rejected(self):
        with pytest.raises(ConfigurationError, match="csm-classifier"):
            validate_sequence((CLASSIFIER,), RUN_INPUTS)

    def test_order_matters(self):
        with pytest.raises(ConfigurationError):
            validate_sequence(MAP_STEPS + (CLASSIFIER, DEDUP_LINKER), RUN_INPUTS)


class TestValidatePlan:
    """Tests for validate_plan."""

    def test_default_plan(self):
        validate_plan(MAP_STEPS, REDUCE_STEPS, TAIL_STEPS)

    def test_missing_reduce_producer(self):
        with pytest.raises(ConfigurationError):
            validate_plan(MAP_STEPS, REDUCE_STEPS[1:], TAIL_STEPS)

    def test_tail_without_reason_assembler(self):
        with pytest.raises(ConfigurationError):
            validate_plan(MAP_STEPS, REDUCE_STEPS, (OUTPUT_FORMATTER,))
