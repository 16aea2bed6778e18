"""Pipeline state, step execution and the controller graph."""

from .graph import PipelineController, build_pipeline, validate_plan
from .refinement import RefinementLoop, RefinementOutcome, extract_score, parse_review
from .runner import StepRunner
from .state import GraphState, PipelineState, create_initial_state

__all__ = [
    "PipelineController",
    "build_pipeline",
    "validate_plan",
    "RefinementLoop",
    "RefinementOutcome",
    "extract_score",
    "parse_review",
    "StepRunner",
    "GraphState",
    "PipelineState",
    "create_initial_state",
]
