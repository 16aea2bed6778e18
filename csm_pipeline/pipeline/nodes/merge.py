"""Merge and bridge nodes: unify chunk results and hand them to the reduce phase."""

import structlog
from pydantic import ValidationError

from csm_pipeline.config.steps import (
    CHUNK_MERGER,
    CHUNK_RESULTS,
    MERGED_RESULT,
    NORMALIZED_CANDIDATES,
    SOURCE_CLASSIFICATION,
)
from csm_pipeline.errors import MergeError, StepInvocationError
from csm_pipeline.llm.json_parsing import loads_or_none
from csm_pipeline.models import ErrorSeverity, MergedResult, ProcessingError
from csm_pipeline.pipeline.state import GraphState
from csm_pipeline.processing.chunk_merger import merge_chunk_results, merged_result_json
from csm_pipeline.processing.record_batcher import renumber

logger = structlog.get_logger(__name__)


def _parse_merged(raw: str | None) -> MergedResult | None:
    payload = loads_or_none(raw)
    if not isinstance(payload, dict) or not isinstance(payload.get("merged_candidates"), list):
        return None
    try:
        return MergedResult.model_validate(payload)
    except ValidationError:
        return None


def merge_node(state: GraphState) -> GraphState:
    """Run the chunk merge step, falling back to the deterministic merge.

    Args:
        state: Current graph state.

    Returns:
        State update with merge_stats and any warnings.
    """
    ctx = state["run_context"]
    store = state["scope"]
    warnings = []

    logger.info("merge_phase_start")

    merged = None
    try:
        merged = _parse_merged(ctx.runner.run(CHUNK_MERGER, store))
        if merged is None:
            logger.warning("merge_step_output_unusable_using_deterministic_merge")
            warnings.append(ProcessingError.create(
                stage="merge",
                message="Merge step output could not be parsed; deterministic merge used",
                severity=ErrorSeverity.WARNING,
            ).model_dump(mode="json"))
    except StepInvocationError as e:
        logger.warning("merge_step_failed_using_deterministic_merge", error=str(e))
        warnings.append(ProcessingError.create(
            stage="merge",
            message=f"Merge step failed; deterministic merge used: {e}",
            severity=ErrorSeverity.WARNING,
        ).model_dump(mode="json"))

    if merged is None:
        try:
            merged = merge_chunk_results(store.read(CHUNK_RESULTS))
        except MergeError as e:
            logger.exception("merge_node_error")
            return {
                "failed_stage": "merge",
                "warnings": warnings,
                "errors": [ProcessingError.create(
                    stage="merge",
                    message=str(e),
                    severity=ErrorSeverity.CRITICAL,
                    recoverable=False,
                ).model_dump(mode="json")],
            }
        store.write(MERGED_RESULT, merged_result_json(merged))

    stats = merged.merge_stats
    logger.info(
        "merge_phase_complete",
        candidates=len(merged.merged_candidates),
        sources=len(merged.global_source_classification),
        overlap_duplicates=stats.overlap_duplicates if stats else None,
    )

    return {
        "merge_stats": stats.model_dump() if stats else None,
        "warnings": warnings,
    }


def bridge_node(state: GraphState) -> GraphState:
    """Translate the merged result into the reduce phase's inputs.

    Writes normalizedCandidates and sourceClassification. An unparsable
    merged result is passed through unchanged as normalizedCandidates.

    Args:
        state: Current graph state.

    Returns:
        State update with any warnings.
    """
    store = state["scope"]
    raw = store.read(MERGED_RESULT)
    merged = _parse_merged(raw)

    if merged is None:
        logger.warning("bridge_merged_result_unparsable_passing_through", preview=raw[:200])
        store.write(NORMALIZED_CANDIDATES, raw)
        store.seed_defaults({SOURCE_CLASSIFICATION: {"source_classification": []}})
        return {
            "candidate_count": 0,
            "warnings": [ProcessingError.create(
                stage="bridge",
                message="Merged result could not be parsed; passed through unchanged",
                severity=ErrorSeverity.WARNING,
            ).model_dump(mode="json")],
        }

    store.write(NORMALIZED_CANDIDATES, {
        "normalized_candidates": renumber(merged.merged_candidates),
        "entities_found": [],
    })
    store.write(SOURCE_CLASSIFICATION, {
        "source_classification": merged.global_source_classification,
    })

    if merged.merge_stats:
        logger.info("bridge_merge_stats", **merged.merge_stats.model_dump())
    logger.info("bridge_complete", candidates=len(merged.merged_candidates))
    return {"candidate_count": len(merged.merged_candidates)}
