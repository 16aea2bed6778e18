"""LangGraph workflow and controller for the extraction pipeline."""

import json
import time
from collections.abc import Sequence

import structlog
from langgraph.graph import END, START, StateGraph

from csm_pipeline.config.settings import ControllerConfig, Settings, get_settings
from csm_pipeline.config.steps import (
    CHUNK_MERGER,
    CHUNK_RESULTS,
    EXTRACTION_CRITIC,
    EXTRACTION_REVIEW,
    FILE_NAMES,
    MAP_STEPS,
    NORMALIZED_CANDIDATES,
    OUTPUT_REFINER,
    OVERLAY_MERGER,
    REDUCE_STEPS,
    RUN_INPUTS,
    SOURCE_CLASSIFICATION,
    SOURCE_TEXT,
    TAIL_STEPS,
    StepSpec,
    validate_sequence,
)
from csm_pipeline.extraction.chunker import ChunkingConfig, DocumentChunker
from csm_pipeline.llm.invoker import CompositeStepInvoker, LLMStepInvoker, LocalStepInvoker, StepInvoker
from csm_pipeline.models import (
    ExecutionPath,
    MergeStats,
    MergeStrategy,
    PipelineResult,
    ProcessingError,
    ReviewResult,
)
from csm_pipeline.pipeline.context import RunContext
from csm_pipeline.pipeline.nodes import (
    bridge_node,
    direct_node,
    finalize_node,
    map_node,
    merge_node,
    reduce_node,
    refine_node,
    route_node,
    select_path,
    should_continue,
    tail_node,
)
from csm_pipeline.pipeline.refinement import RefinementLoop
from csm_pipeline.pipeline.runner import StepRunner
from csm_pipeline.pipeline.state import GraphState, PipelineState, create_initial_state
from csm_pipeline.processing.chunk_merger import run_merge_step
from csm_pipeline.processing.overlay_merger import create_enrichment_merger
from csm_pipeline.processing.record_batcher import RecordBatcher

logger = structlog.get_logger(__name__)


def build_pipeline() -> StateGraph:
    """Build the LangGraph workflow for the controller.

    ROUTE branches to DIRECT or to MAP -> MERGE -> BRIDGE -> REDUCE; both
    paths continue through TAIL -> REFINE -> FINALIZE. A whole-set stage
    failure skips straight to FINALIZE.

    Returns:
        Uncompiled StateGraph.
    """
    logger.info("building_pipeline")

    workflow = StateGraph(GraphState)

    workflow.add_node("route", route_node)
    workflow.add_node("direct", direct_node)
    workflow.add_node("map", map_node)
    workflow.add_node("merge", merge_node)
    workflow.add_node("bridge", bridge_node)
    workflow.add_node("reduce", reduce_node)
    workflow.add_node("tail", tail_node)
    workflow.add_node("refine", refine_node)
    workflow.add_node("finalize", finalize_node)

    workflow.add_edge(START, "route")

    workflow.add_conditional_edges(
        "route",
        select_path,
        {
            ExecutionPath.DIRECT.value: "direct",
            ExecutionPath.CHUNKED.value: "map",
        },
    )

    # Direct -> Tail
    workflow.add_conditional_edges("direct", should_continue, {"continue": "tail", "abort": "finalize"})

    # Map -> Merge -> Bridge -> Reduce -> Tail
    workflow.add_conditional_edges("map", should_continue, {"continue": "merge", "abort": "finalize"})
    workflow.add_conditional_edges("merge", should_continue, {"continue": "bridge", "abort": "finalize"})
    workflow.add_edge("bridge", "reduce")
    workflow.add_conditional_edges("reduce", should_continue, {"continue": "tail", "abort": "finalize"})

    # Tail -> Refine -> Finalize -> End
    workflow.add_conditional_edges("tail", should_continue, {"continue": "refine", "abort": "finalize"})
    workflow.add_edge("refine", "finalize")
    workflow.add_edge("finalize", END)

    logger.info("pipeline_built")

    return workflow


def validate_plan(
    map_steps: Sequence[StepSpec],
    reduce_steps: Sequence[StepSpec],
    tail_steps: Sequence[StepSpec],
) -> None:
    """Check both execution paths for inputs that nothing produces.

    Raises:
        ConfigurationError: If a step reads a name with no producer.
    """
    loop_seeds = {EXTRACTION_REVIEW}

    # Direct path
    produced = validate_sequence(list(map_steps) + list(reduce_steps) + list(tail_steps), RUN_INPUTS)
    validate_sequence((EXTRACTION_CRITIC, OUTPUT_REFINER), produced | loop_seeds)

    # Chunked path: map outputs are restored after each chunk, so only
    # chunkResults survives; the bridge writes the reduce inputs.
    validate_sequence(map_steps, RUN_INPUTS)
    produced = validate_sequence((CHUNK_MERGER,), RUN_INPUTS | {CHUNK_RESULTS})
    produced |= {NORMALIZED_CANDIDATES, SOURCE_CLASSIFICATION}
    produced = validate_sequence(list(reduce_steps) + list(tail_steps), produced)
    validate_sequence((EXTRACTION_CRITIC, OUTPUT_REFINER), produced | loop_seeds)


class PipelineController:
    """Entry point: runs the extraction pipeline over one document set.

    Configuration and step wiring are validated on construction, so a
    ConfigurationError is raised before any step executes.
    """

    def __init__(
        self,
        invoker: StepInvoker,
        config: ControllerConfig | None = None,
        map_steps: Sequence[StepSpec] = MAP_STEPS,
        reduce_steps: Sequence[StepSpec] = REDUCE_STEPS,
        tail_steps: Sequence[StepSpec] = TAIL_STEPS,
    ):
        self.config = config or ControllerConfig.from_settings()
        self.map_steps = tuple(map_steps)
        self.reduce_steps = tuple(reduce_steps)
        self.tail_steps = tuple(tail_steps)

        validate_plan(self.map_steps, self.reduce_steps, self.tail_steps)

        self.chunker = DocumentChunker(ChunkingConfig(
            pages_per_chunk=self.config.pages_per_chunk,
            overlap_pages=self.config.overlap_pages,
            page_delimiter=self.config.page_delimiter_pattern,
        ))
        self.batcher = RecordBatcher(self.config.batch_size)
        self.refinement = RefinementLoop(
            max_iterations=self.config.max_refinement_iterations,
            quality_threshold=self.config.quality_threshold,
        )

        enrichment_merger = create_enrichment_merger()
        handlers = {OVERLAY_MERGER.name: enrichment_merger.run_step}
        if self.config.merge_strategy == MergeStrategy.DETERMINISTIC:
            handlers[CHUNK_MERGER.name] = run_merge_step
        self.invoker = CompositeStepInvoker(LocalStepInvoker(handlers), invoker)

        self.app = build_pipeline().compile()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineController":
        """Controller backed by the Ollama step invoker."""
        settings = settings or get_settings()
        return cls(LLMStepInvoker.from_settings(settings), ControllerConfig.from_settings(settings))

    def run(self, document: str, file_manifest: str | list[str]) -> PipelineResult:
        """Run the pipeline and return the final output with run metadata.

        Args:
            document: Page-delimited source text.
            file_manifest: JSON list of source file names (or the list itself).

        Returns:
            PipelineResult.

        Raises:
            MissingStateError: If a step input is absent at run time.
        """
        start_time = time.time()

        if not isinstance(file_manifest, str):
            file_manifest = json.dumps(list(file_manifest), ensure_ascii=False)

        store = PipelineState({SOURCE_TEXT: document or "", FILE_NAMES: file_manifest})
        context = RunContext(
            config=self.config,
            runner=StepRunner(self.invoker),
            chunker=self.chunker,
            batcher=self.batcher,
            refinement=self.refinement,
            map_steps=self.map_steps,
            reduce_steps=self.reduce_steps,
            tail_steps=self.tail_steps,
        )

        logger.info("pipeline_start", document_chars=len(document or ""))

        final_state = self.app.invoke(create_initial_state(store, context))

        duration = time.time() - start_time
        review = final_state.get("review")
        merge_stats = final_state.get("merge_stats")

        result = PipelineResult(
            final_output=final_state["final_output"],
            path=ExecutionPath(final_state["path"]),
            review=ReviewResult.model_validate(review) if review else ReviewResult.empty(),
            quality_met=final_state.get("quality_met", False),
            refinement_iterations=final_state.get("refinement_iterations", 0),
            critic_calls=final_state.get("critic_calls", 0),
            chunk_count=final_state.get("chunk_count", 0),
            batch_count=final_state.get("batch_count", 0),
            merge_stats=MergeStats.model_validate(merge_stats) if merge_stats else None,
            step_calls=context.runner.calls,
            duration_seconds=duration,
            errors=[ProcessingError.model_validate(e) for e in final_state.get("errors", [])],
            warnings=[ProcessingError.model_validate(w) for w in final_state.get("warnings", [])],
        )

        logger.info(
            "pipeline_complete",
            path=result.path.value,
            duration_seconds=round(duration, 2),
            step_calls=result.step_calls,
            quality_met=result.quality_met,
            errors=len(result.errors),
            warnings=len(result.warnings),
        )

        return result

    def execute(self, document: str, file_manifest: str | list[str]) -> str:
        """Run the pipeline and return only the final output JSON."""
        return self.run(document, file_manifest).final_output
