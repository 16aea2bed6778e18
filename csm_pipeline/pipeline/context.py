"""Per-run collaborators shared by the graph nodes."""

from dataclasses import dataclass

from csm_pipeline.config.settings import ControllerConfig
from csm_pipeline.config.steps import StepSpec
from csm_pipeline.extraction.chunker import DocumentChunker
from csm_pipeline.pipeline.refinement import RefinementLoop
from csm_pipeline.pipeline.runner import StepRunner
from csm_pipeline.processing.record_batcher import RecordBatcher


@dataclass
class RunContext:
    """Everything a node needs besides the graph state itself."""

    config: ControllerConfig
    runner: StepRunner
    chunker: DocumentChunker
    batcher: RecordBatcher
    refinement: RefinementLoop
    map_steps: tuple[StepSpec, ...]
    reduce_steps: tuple[StepSpec, ...]
    tail_steps: tuple[StepSpec, ...]
