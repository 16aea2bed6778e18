"""Reduce phase: per-record classification and enrichment, batched when large."""

import structlog

from csm_pipeline.config.steps import ENRICHED_CANDIDATES, NORMALIZED_CANDIDATES
from csm_pipeline.errors import MergeError, StepInvocationError
from csm_pipeline.models import ErrorSeverity, ProcessingError
from csm_pipeline.pipeline.parallel import run_units
from csm_pipeline.pipeline.state import GraphState, PipelineState

logger = structlog.get_logger(__name__)


def _stage_failure(stage: str, message: str, details: dict | None = None, errors: list[dict] | None = None) -> GraphState:
    return {
        "failed_stage": stage,
        "errors": (errors or []) + [ProcessingError.create(
            stage=stage,
            message=message,
            severity=ErrorSeverity.CRITICAL,
            details=details,
            recoverable=False,
        ).model_dump(mode="json")],
    }


def direct_node(state: GraphState) -> GraphState:
    """Run the map and reduce steps once over the whole document.

    Args:
        state: Current graph state.

    Returns:
        State update; failed_stage is set if a step fails.
    """
    ctx = state["run_context"]
    store = state["scope"]

    logger.info("direct_path_start")
    try:
        ctx.runner.run_sequence(ctx.map_steps + ctx.reduce_steps, store)
    except StepInvocationError as e:
        logger.exception("direct_path_error")
        return {"chunk_count": 1, "batch_count": 1, **_stage_failure("direct", str(e), {"step": e.step})}

    logger.info("direct_path_complete")
    return {"chunk_count": 1, "batch_count": 1}


def reduce_node(state: GraphState) -> GraphState:
    """Run the reduce steps over the merged candidates.

    Collections larger than the batch size are split into batches. Each
    batch runs with normalizedCandidates replaced by its slice; failed
    batches are recorded and left out of the merged result.

    Args:
        state: Current graph state.

    Returns:
        State update with batch_count, failed batches and errors.
    """
    ctx = state["run_context"]
    store = state["scope"]
    steps = ctx.reduce_steps

    payload = store.read(NORMALIZED_CANDIDATES)
    batches = ctx.batcher.split(payload) if ctx.config.batching_enabled else [payload]

    logger.info(
        "reduce_phase_start",
        records=ctx.batcher.count_records(payload),
        batches=len(batches),
        batching_enabled=ctx.config.batching_enabled,
    )

    if len(batches) == 1:
        try:
            ctx.runner.run_sequence(steps, store)
        except StepInvocationError as e:
            logger.exception("reduce_node_error")
            return {"batch_count": 1, "failed_batches": [0], **_stage_failure("reduce", str(e), {"step": e.step})}
        return {"batch_count": 1, "failed_batches": []}

    produced = tuple(dict.fromkeys(step.output for step in steps))

    def run_batch(batch: str, target: PipelineState) -> str:
        with target.preserved(produced), target.overwritten({NORMALIZED_CANDIDATES: batch}):
            ctx.runner.run_sequence(steps, target)
            return target.read(ENRICHED_CANDIDATES)

    if ctx.config.max_workers > 1:
        def unit(batch: str) -> str:
            return run_batch(batch, store.clone())
    else:
        def unit(batch: str) -> str:
            return run_batch(batch, store)

    results = run_units(unit, batches, ctx.config.max_workers)

    outputs = []
    failed = []
    errors = []
    for result in results:
        if result.ok:
            outputs.append(result.value)
            continue
        failed.append(result.index)
        logger.warning("batch_failed", batch_index=result.index, error=str(result.error))
        errors.append(ProcessingError.create(
            stage="reduce",
            message=str(result.error),
            details={"batch_index": result.index, "step": result.error.step},
        ).model_dump(mode="json"))

    update: GraphState = {
        "batch_count": len(batches),
        "failed_batches": failed,
        "errors": errors,
    }

    try:
        store.write(ENRICHED_CANDIDATES, ctx.batcher.merge_and_renumber(outputs))
    except MergeError as e:
        logger.error("reduce_phase_no_usable_batches", batches=len(batches), failed=len(failed))
        store.write(ENRICHED_CANDIDATES, {"enriched_candidates": []})
        return {**update, **_stage_failure("reduce", str(e), errors=errors)}

    logger.info("reduce_phase_complete", batches=len(batches), failed=len(failed))
    return update
