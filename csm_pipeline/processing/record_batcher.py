"""Splitting record collections into batches and merging them back."""

import json

import structlog

from csm_pipeline.errors import ConfigurationError, MergeError
from csm_pipeline.llm.json_parsing import loads_or_none

logger = structlog.get_logger(__name__)

# Keys checked, in order, for the record array inside a step payload
RECORD_ARRAY_KEYS = (
    "normalized_candidates",
    "raw_candidates",
    "merged_candidates",
    "enriched_candidates",
    "scored_candidates",
    "classified_candidates",
    "candidates",
    "records",
    "extracted_records",
)

# Sibling fields that describe the whole collection and belong to one batch only
GLOBAL_CONTEXT_KEYS = ("entities_found",)

DEFAULT_OUTPUT_KEY = "enriched_candidates"


def locate_records(payload) -> tuple[str | None, list] | None:
    """Find the record array in a parsed payload.

    Args:
        payload: Parsed JSON value.

    Returns:
        Tuple of (key, records), with key None for a root-level array, or
        None when no record array is present.
    """
    if isinstance(payload, list):
        return None, payload
    if isinstance(payload, dict):
        for key in RECORD_ARRAY_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return key, value
    return None


def renumber(records: list[dict]) -> list[dict]:
    """Return copies of records with ids assigned 1..n in list order."""
    return [{**record, "id": i} for i, record in enumerate(records, start=1)]


class RecordBatcher:
    """Partitions a JSON record collection into bounded batches."""

    def __init__(self, batch_size: int = 50):
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = batch_size

    def count_records(self, payload_json: str) -> int:
        """Number of records in a payload, 0 if it is malformed or has none."""
        located = locate_records(loads_or_none(payload_json))
        if located is None:
            return 0
        return len(located[1])

    def needs_batching(self, payload_json: str) -> bool:
        return self.count_records(payload_json) > self.batch_size

    def split(self, payload_json: str) -> list[str]:
        """Split a payload into batches of at most batch_size records.

        Every batch keeps the payload's other fields, except global context
        fields, which stay with the first batch only. Payloads that are
        malformed or small enough are returned unchanged as a single batch.

        Args:
            payload_json: JSON payload holding a record array.

        Returns:
            List of batch payload JSON strings.
        """
        parsed = loads_or_none(payload_json)
        located = locate_records(parsed)
        if located is None:
            if payload_json and payload_json.strip():
                logger.warning("batch_split_unparsable_input", preview=payload_json[:120])
            return [payload_json]

        key, records = located
        if len(records) <= self.batch_size:
            return [payload_json]

        batches = []
        for batch_index, start in enumerate(range(0, len(records), self.batch_size)):
            chunk = records[start:start + self.batch_size]
            if key is None:
                batches.append(json.dumps(chunk, ensure_ascii=False))
                continue

            batch = {}
            for field, value in parsed.items():
                if field == key:
                    batch[field] = chunk
                elif field in GLOBAL_CONTEXT_KEYS and batch_index > 0:
                    batch[field] = []
                else:
                    batch[field] = value
            batches.append(json.dumps(batch, ensure_ascii=False))

        logger.info(
            "records_split_into_batches",
            total_records=len(records),
            batch_size=self.batch_size,
            num_batches=len(batches),
            record_key=key,
        )
        return batches

    def merge_and_renumber(self, batch_results: list[str]) -> str:
        """Concatenate batch results in order and renumber ids from 1.

        Malformed batches are skipped with a warning.

        Args:
            batch_results: Batch output JSON strings, in batch order.

        Returns:
            JSON object holding the merged records under the first record
            key detected in any batch.

        Raises:
            MergeError: If no batch contains a record array.
        """
        merged: list[dict] = []
        output_key = None
        usable = 0

        for batch_index, batch_json in enumerate(batch_results):
            located = locate_records(loads_or_none(batch_json))
            if located is None:
                logger.warning(
                    "batch_merge_skipping_malformed",
                    batch_index=batch_index,
                    preview=(batch_json or "")[:120],
                )
                continue

            key, records = located
            usable += 1
            if output_key is None and key is not None:
                output_key = key

            for record in records:
                if isinstance(record, dict):
                    merged.append(record)
                else:
                    logger.warning("batch_merge_skipping_non_object", batch_index=batch_index)

        if usable == 0:
            raise MergeError(f"None of {len(batch_results)} batch results held a record array")

        output_key = output_key or DEFAULT_OUTPUT_KEY
        logger.info(
            "batches_merged",
            batches=len(batch_results),
            usable_batches=usable,
            total_records=len(merged),
            record_key=output_key,
        )
        return json.dumps({output_key: renumber(merged)}, ensure_ascii=False)
