"""Deterministic processing of record collections."""

from .chunk_merger import merge_chunk_results, merged_result_json, run_merge_step
from .output_finalizer import finalize_output
from .overlay_merger import FieldOverlayMerger, MergeOutcome, OverlaySpec, create_enrichment_merger
from .record_batcher import RecordBatcher, locate_records, renumber

__all__ = [
    "merge_chunk_results",
    "merged_result_json",
    "run_merge_step",
    "finalize_output",
    "FieldOverlayMerger",
    "MergeOutcome",
    "OverlaySpec",
    "create_enrichment_merger",
    "RecordBatcher",
    "locate_records",
    "renumber",
]
