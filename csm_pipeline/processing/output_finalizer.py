"""Normalization of the formatter's final output."""

import json

import structlog

from csm_pipeline.llm.json_parsing import loads_or_none
from csm_pipeline.models import OPTIONAL_TEXT_FIELDS, ExtractionOutput
from csm_pipeline.processing.record_batcher import locate_records, renumber

logger = structlog.get_logger(__name__)

EMPTY_OUTPUT = ExtractionOutput.empty().to_json()


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _normalize_record(record: dict) -> dict:
    record = dict(record)
    for name in OPTIONAL_TEXT_FIELDS:
        value = record.get(name)
        if isinstance(value, str) and not value.strip():
            record[name] = None
    if "isCsm" in record:
        record["isCsm"] = _as_bool(record["isCsm"])
    return record


def finalize_output(output_json: str | None) -> str:
    """Bring the final output into its published shape.

    Records are wrapped as {"extracted_records": [...]}, CSM records are
    moved ahead of the rest (keeping relative order), ids are renumbered
    from 1 and blank optional text fields become null. Output that cannot
    be parsed is returned unchanged.

    Args:
        output_json: Final output JSON from the formatter or refiner.

    Returns:
        Normalized final output JSON string.
    """
    if output_json is None or not output_json.strip():
        return EMPTY_OUTPUT

    located = locate_records(loads_or_none(output_json))
    if located is None:
        logger.warning("final_output_unparsable_passing_through", preview=output_json[:200])
        return output_json

    records = [_normalize_record(r) for r in located[1] if isinstance(r, dict)]
    records.sort(key=lambda r: not r.get("isCsm", False))
    records = renumber(records)

    logger.info(
        "final_output_normalized",
        records=len(records),
        csm_records=sum(1 for r in records if r.get("isCsm")),
    )
    return json.dumps({"extracted_records": records}, ensure_ascii=False)
