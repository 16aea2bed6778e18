"""Tail phase: whole-set assembly, the quality loop and output finalization."""

import structlog

from csm_pipeline.config.steps import EXTRACTION_CRITIC, EXTRACTION_REVIEW, FINAL_OUTPUT, OUTPUT_REFINER
from csm_pipeline.errors import StepInvocationError
from csm_pipeline.models import ErrorSeverity, ProcessingError, ReviewResult
from csm_pipeline.pipeline.state import GraphState
from csm_pipeline.processing.output_finalizer import EMPTY_OUTPUT, finalize_output

logger = structlog.get_logger(__name__)


def tail_node(state: GraphState) -> GraphState:
    """Run the whole-set steps (reason assembly and formatting), never batched.

    Args:
        state: Current graph state.

    Returns:
        State update; failed_stage is set if a step fails.
    """
    ctx = state["run_context"]

    logger.info("tail_phase_start")
    try:
        ctx.runner.run_sequence(ctx.tail_steps, state["scope"])
    except StepInvocationError as e:
        logger.exception("tail_node_error")
        return {
            "failed_stage": "tail",
            "errors": [ProcessingError.create(
                stage="tail",
                message=str(e),
                severity=ErrorSeverity.CRITICAL,
                details={"step": e.step},
                recoverable=False,
            ).model_dump(mode="json")],
        }

    logger.info("tail_phase_complete")
    return {"final_output": state["scope"].read(FINAL_OUTPUT)}


def refine_node(state: GraphState) -> GraphState:
    """Run the critic/refiner loop over the formatted output.

    Args:
        state: Current graph state.

    Returns:
        State update with the review and loop bookkeeping.
    """
    ctx = state["run_context"]
    store = state["scope"]

    store.seed_defaults({EXTRACTION_REVIEW: ReviewResult.empty().to_state_json()})

    def critic(output: str) -> str:
        store.write(FINAL_OUTPUT, output)
        return ctx.runner.run(EXTRACTION_CRITIC, store)

    def refiner(output: str, raw_review: str) -> str:
        store.write(FINAL_OUTPUT, output)
        store.write(EXTRACTION_REVIEW, raw_review)
        return ctx.runner.run(OUTPUT_REFINER, store)

    outcome = ctx.refinement.run(store.read(FINAL_OUTPUT), critic, refiner)

    store.write(FINAL_OUTPUT, outcome.output)
    store.write(EXTRACTION_REVIEW, outcome.review.to_state_json())

    update: GraphState = {
        "final_output": outcome.output,
        "review": outcome.review.model_dump(mode="json"),
        "quality_met": outcome.quality_met,
        "refinement_iterations": outcome.iterations,
        "critic_calls": outcome.critic_calls,
    }

    if outcome.error:
        update["warnings"] = [ProcessingError.create(
            stage="refinement",
            message=outcome.error,
            severity=ErrorSeverity.WARNING,
            details={"iterations": outcome.iterations},
        ).model_dump(mode="json")]
    elif not outcome.quality_met:
        update["warnings"] = [ProcessingError.create(
            stage="refinement",
            message=f"Quality threshold not met after {outcome.iterations} iterations",
            severity=ErrorSeverity.WARNING,
            details={"score": outcome.review.score, "threshold": ctx.refinement.quality_threshold},
        ).model_dump(mode="json")]

    return update


def finalize_node(state: GraphState) -> GraphState:
    """Normalize the final output, or emit the empty result after a failure.

    Args:
        state: Current graph state.

    Returns:
        State update with final_output.
    """
    if state.get("failed_stage"):
        logger.warning("finalizing_empty_output", failed_stage=state["failed_stage"])
        final = EMPTY_OUTPUT
    else:
        final = finalize_output(state["scope"].get(FINAL_OUTPUT))

    state["scope"].write(FINAL_OUTPUT, final)
    return {"final_output": final}
