"""Map phase: per-chunk execution of the text-dependent steps."""

import structlog

from csm_pipeline.config.steps import (
    CHUNK_RESULTS,
    NORMALIZED_CANDIDATES,
    RAW_NAMES,
    SOURCE_CLASSIFICATION,
    SOURCE_TEXT,
)
from csm_pipeline.llm.json_parsing import ensure_json
from csm_pipeline.models import ChunkModel, ErrorSeverity, ProcessingError
from csm_pipeline.pipeline.parallel import run_units
from csm_pipeline.pipeline.runner import StepRunner
from csm_pipeline.pipeline.state import GraphState, PipelineState

logger = structlog.get_logger(__name__)

# Map outputs every chunk entry carries under fixed keys
CHUNK_ENTRY_FIELDS = (RAW_NAMES, SOURCE_CLASSIFICATION, NORMALIZED_CANDIDATES)


def build_chunk_entry(chunk: ChunkModel, state: PipelineState, outputs: tuple[str, ...] = ()) -> dict:
    """Describe one chunk's results for the merge step.

    Outputs of map steps beyond the standard three are carried under their
    state names.
    """
    entry = {
        "chunkIndex": chunk.index,
        "pageStart": chunk.page_start,
        "pageEnd": chunk.page_end,
        "overlapStartPage": chunk.overlap_start,
        "overlapEndPage": chunk.overlap_end,
        "isFirstChunk": chunk.is_first_chunk,
        "isLastChunk": chunk.is_last_chunk,
        "rawNames": ensure_json(state.get(RAW_NAMES)),
        "sourceClassification": ensure_json(state.get(SOURCE_CLASSIFICATION)),
        "normalizedCandidates": ensure_json(state.get(NORMALIZED_CANDIDATES)),
    }
    for name in outputs:
        if name not in CHUNK_ENTRY_FIELDS:
            entry[name] = ensure_json(state.get(name))
    return entry


def run_chunk(chunk: ChunkModel, state: PipelineState, runner: StepRunner, steps) -> dict:
    """Run the map steps for one chunk on the shared state.

    sourceText is replaced by the chunk text and every name the map steps
    write is restored afterwards, also when a step fails.
    """
    outputs = tuple(dict.fromkeys(step.output for step in steps))
    with state.preserved(outputs), state.overwritten({SOURCE_TEXT: chunk.text}):
        runner.run_sequence(steps, state)
        return build_chunk_entry(chunk, state, outputs)


def map_node(state: GraphState) -> GraphState:
    """Chunk the document and run the map steps on every chunk.

    Args:
        state: Current graph state.

    Returns:
        State update with chunks, failed chunk indexes and errors.
    """
    ctx = state["run_context"]
    store = state["scope"]

    chunks = ctx.chunker.chunk(store.read(SOURCE_TEXT))
    logger.info("map_phase_start", chunks=len(chunks), max_workers=ctx.config.max_workers)

    if ctx.config.max_workers > 1:
        def unit(chunk: ChunkModel) -> dict:
            return run_chunk(chunk, store.clone(), ctx.runner, ctx.map_steps)
    else:
        def unit(chunk: ChunkModel) -> dict:
            return run_chunk(chunk, store, ctx.runner, ctx.map_steps)

    results = run_units(unit, chunks, ctx.config.max_workers)

    entries = []
    failed = []
    errors = []
    for chunk, result in zip(chunks, results):
        if result.ok:
            entries.append(result.value)
            logger.debug("chunk_mapped", chunk=chunk.label)
            continue
        failed.append(chunk.index)
        logger.warning("chunk_failed", chunk=chunk.label, error=str(result.error))
        errors.append(ProcessingError.create(
            stage="map",
            message=str(result.error),
            details={
                "chunk_index": chunk.index,
                "page_start": chunk.page_start,
                "page_end": chunk.page_end,
                "step": result.error.step,
            },
        ).model_dump(mode="json"))

    store.write(CHUNK_RESULTS, {"chunks": entries})

    update: GraphState = {
        "chunks": [c.model_dump() for c in chunks],
        "chunk_count": len(chunks),
        "failed_chunks": failed,
        "errors": errors,
    }

    if not entries:
        logger.error("map_phase_all_chunks_failed", chunks=len(chunks))
        update["failed_stage"] = "map"
        update["errors"] = update["errors"] + [ProcessingError.create(
            stage="map",
            message="Every chunk failed; no results to merge",
            severity=ErrorSeverity.CRITICAL,
            recoverable=False,
        ).model_dump(mode="json")]

    logger.info("map_phase_complete", chunks=len(chunks), succeeded=len(entries), failed=len(failed))
    return update
