"""Step descriptors and the pipeline's step catalog."""

from collections.abc import Iterable
from dataclasses import dataclass

from csm_pipeline.errors import ConfigurationError

# State names
SOURCE_TEXT = "sourceText"
FILE_NAMES = "fileNames"
RAW_NAMES = "rawNames"
SOURCE_CLASSIFICATION = "sourceClassification"
NORMALIZED_CANDIDATES = "normalizedCandidates"
CHUNK_RESULTS = "chunkResults"
MERGED_RESULT = "mergedResult"
DEDUPED_CANDIDATES = "dedupedCandidates"
CLASSIFIED_CANDIDATES = "classifiedCandidates"
COUNTRY_OVERRIDES = "countryOverrides"
TITLE_EXTRACTIONS = "titleExtractions"
SCORED_CANDIDATES = "scoredCandidates"
ENRICHED_CANDIDATES = "enrichedCandidates"
REASONED_CANDIDATES = "reasonedCandidates"
FINAL_OUTPUT = "finalOutput"
EXTRACTION_REVIEW = "extractionReview"


@dataclass(frozen=True)
class StepSpec:
    """Declaration of one pipeline step.

    Attributes:
        name: Step name passed to the invoker.
        inputs: State names the step reads, in order.
        output: The single state name the step writes.
        description: Human-readable purpose.
        local: Whether the step runs in-process instead of on the LLM.
        raw_output: Whether the response is kept as text instead of being
            normalized to JSON. The reader then parses it tolerantly.
    """

    name: str
    inputs: tuple[str, ...]
    output: str
    description: str = ""
    local: bool = False
    raw_output: bool = False


CANDIDATE_EXTRACTOR = StepSpec(
    "csm-candidate-extractor", (SOURCE_TEXT, FILE_NAMES), RAW_NAMES,
    "Find every person named in the source text",
)
SOURCE_CLASSIFIER = StepSpec(
    "csm-source-classifier", (SOURCE_TEXT, FILE_NAMES), SOURCE_CLASSIFICATION,
    "Rank source documents by authority",
)
NAME_NORMALIZER = StepSpec(
    "csm-name-normalizer", (RAW_NAMES, SOURCE_CLASSIFICATION), NORMALIZED_CANDIDATES,
    "Normalize raw names and build dedup keys",
)
CHUNK_MERGER = StepSpec(
    "csm-chunk-merger", (CHUNK_RESULTS,), MERGED_RESULT,
    "Unify per-chunk results",
)
DEDUP_LINKER = StepSpec(
    "csm-dedup-linker", (NORMALIZED_CANDIDATES, SOURCE_CLASSIFICATION), DEDUPED_CANDIDATES,
    "Merge duplicate persons and link prevailing sources",
)
CLASSIFIER = StepSpec(
    "csm-classifier", (DEDUPED_CANDIDATES, SOURCE_TEXT, SOURCE_CLASSIFICATION), CLASSIFIED_CANDIDATES,
    "Decide CSM eligibility with universal rules",
)
COUNTRY_OVERRIDE = StepSpec(
    "csm-country-override", (CLASSIFIED_CANDIDATES, SOURCE_CLASSIFICATION), COUNTRY_OVERRIDES,
    "Apply country profile overrides",
)
TITLE_EXTRACTOR = StepSpec(
    "csm-title-extractor", (CLASSIFIED_CANDIDATES, SOURCE_TEXT), TITLE_EXTRACTIONS,
    "Extract job and personal titles",
)
SCORING_ENGINE = StepSpec(
    "csm-scoring-engine", (CLASSIFIED_CANDIDATES,), SCORED_CANDIDATES,
    "Compute explanatory scores and quality gates",
)
OVERLAY_MERGER = StepSpec(
    "csm-overlay-merger",
    (CLASSIFIED_CANDIDATES, COUNTRY_OVERRIDES, TITLE_EXTRACTIONS, SCORED_CANDIDATES),
    ENRICHED_CANDIDATES,
    "Merge enrichment fields onto the classified candidates",
    local=True,
)
REASON_ASSEMBLER = StepSpec(
    "csm-reason-assembler", (ENRICHED_CANDIDATES,), REASONED_CANDIDATES,
    "Build canonical reason strings",
)
OUTPUT_FORMATTER = StepSpec(
    "csm-output-formatter", (REASONED_CANDIDATES, FILE_NAMES), FINAL_OUTPUT,
    "Format the published output schema",
)
EXTRACTION_CRITIC = StepSpec(
    "csm-extraction-critic", (FINAL_OUTPUT, SOURCE_TEXT), EXTRACTION_REVIEW,
    "Score the output against the source",
    raw_output=True,
)
OUTPUT_REFINER = StepSpec(
    "csm-output-refiner", (FINAL_OUTPUT, EXTRACTION_REVIEW, ENRICHED_CANDIDATES), FINAL_OUTPUT,
    "Fix issues raised by the critic",
)

# Steps that need raw document text; run per chunk on the chunked path
MAP_STEPS = (CANDIDATE_EXTRACTOR, SOURCE_CLASSIFIER, NAME_NORMALIZER)

# Per-record steps; batchable
REDUCE_STEPS = (DEDUP_LINKER, CLASSIFIER, COUNTRY_OVERRIDE, TITLE_EXTRACTOR, SCORING_ENGINE, OVERLAY_MERGER)

# Whole-set steps; never batched
TAIL_STEPS = (REASON_ASSEMBLER, OUTPUT_FORMATTER)

ALL_STEPS = MAP_STEPS + (CHUNK_MERGER,) + REDUCE_STEPS + TAIL_STEPS + (EXTRACTION_CRITIC, OUTPUT_REFINER)

STEP_CATALOG: dict[str, StepSpec] = {step.name: step for step in ALL_STEPS}

# Names provided by the caller before any step runs
RUN_INPUTS = frozenset({SOURCE_TEXT, FILE_NAMES})


def validate_sequence(steps: Iterable[StepSpec], available: Iterable[str]) -> set[str]:
    """Check that every step input has a producer earlier in the sequence.

    Args:
        steps: Steps in execution order.
        available: Names present before the first step runs.

    Returns:
        Names available after the last step.

    Raises:
        ConfigurationError: If a step reads a name nothing has produced.
    """
    produced = set(available)
    for step in steps:
        missing = [name for name in step.inputs if name not in produced]
        if missing:
            raise ConfigurationError(
                f"Step '{step.name}' reads {missing} but no earlier step or seed produces them"
            )
        produced.add(step.output)
    return produced
