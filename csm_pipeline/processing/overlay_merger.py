"""Field-level merge of parallel enrichment results onto a base collection."""

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

from csm_pipeline.errors import ConfigurationError, MergeError
from csm_pipeline.llm.json_parsing import loads_or_none
from csm_pipeline.processing.record_batcher import RECORD_ARRAY_KEYS

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OverlaySpec:
    """An overlay collection and the record fields it owns.

    Attributes:
        state_key: Pipeline state name holding the overlay JSON.
        fields: Record fields this overlay may overwrite.
        array_keys: Keys checked for the overlay's record array.
    """

    state_key: str
    fields: tuple[str, ...]
    array_keys: tuple[str, ...] = ()


@dataclass
class MergeOutcome:
    """Result of an overlay merge."""

    json: str
    record_count: int = 0
    applied_overlays: list[str] = field(default_factory=list)
    skipped_overlays: list[str] = field(default_factory=list)
    used_fallback: bool = False


def _records_in(payload, preferred_keys: tuple[str, ...]) -> list | None:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in preferred_keys + RECORD_ARRAY_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return None


def _as_id(value) -> int | None:
    """Record id as an int; digit strings count, anything else is no id."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _index_by_id(records: list) -> dict[int, dict]:
    """Index overlay entries by id, falling back to 1-based position."""
    indexed: dict[int, dict] = {}
    for position, entry in enumerate(records, start=1):
        if not isinstance(entry, dict):
            continue
        record_id = _as_id(entry.get("id", position))
        if record_id is not None:
            indexed[record_id] = entry
    return indexed


class FieldOverlayMerger:
    """Applies overlay collections onto a base collection, field by field.

    Each overlay owns a disjoint set of fields. An overlay field replaces
    the base value only when it is present and not null, so the merge is
    independent of overlay order and applying an overlay twice is the same
    as applying it once.
    """

    def __init__(
        self,
        base_key: str,
        overlays: list[OverlaySpec],
        base_array_keys: tuple[str, ...] = ("classified_candidates", "candidates"),
        output_key: str = "enriched_candidates",
        fallback_keys: tuple[str, ...] = (),
    ):
        owners: dict[str, str] = {}
        for overlay in overlays:
            for name in overlay.fields:
                if name == "id":
                    raise ConfigurationError(f"Overlay '{overlay.state_key}' may not own the id field")
                if name in owners:
                    raise ConfigurationError(
                        f"Field '{name}' is owned by both '{owners[name]}' and '{overlay.state_key}'"
                    )
                owners[name] = overlay.state_key

        unknown = [k for k in fallback_keys if k not in {o.state_key for o in overlays}]
        if unknown:
            raise ConfigurationError(f"Fallback keys are not overlays: {unknown}")

        self.base_key = base_key
        self.overlays = list(overlays)
        self.base_array_keys = base_array_keys
        self.output_key = output_key
        self.fallback_keys = fallback_keys

    @property
    def input_keys(self) -> tuple[str, ...]:
        return (self.base_key,) + tuple(o.state_key for o in self.overlays)

    def merge(self, base_json: str, overlay_jsons: Mapping[str, str]) -> MergeOutcome:
        """Merge overlay collections onto the base collection.

        Args:
            base_json: JSON payload with the base record array.
            overlay_jsons: Overlay JSON payloads keyed by state key.

        Returns:
            MergeOutcome whose json is {output_key: [...]}.

        Raises:
            MergeError: If neither the base nor any fallback overlay parses.
        """
        base_records = _records_in(loads_or_none(base_json), self.base_array_keys)
        if base_records is None:
            return self._fallback(overlay_jsons)

        merged = [copy.deepcopy(r) for r in base_records if isinstance(r, dict)]
        outcome = MergeOutcome(json="", record_count=len(merged))

        for overlay in self.overlays:
            raw = overlay_jsons.get(overlay.state_key)
            if raw is None:
                logger.debug("overlay_absent", overlay=overlay.state_key)
                outcome.skipped_overlays.append(overlay.state_key)
                continue

            entries = _records_in(loads_or_none(raw), overlay.array_keys)
            if entries is None:
                logger.warning("overlay_unparsable_skipped", overlay=overlay.state_key, preview=raw[:120])
                outcome.skipped_overlays.append(overlay.state_key)
                continue

            indexed = _index_by_id(entries)
            updated = 0
            for position, record in enumerate(merged, start=1):
                entry = indexed.get(_as_id(record.get("id", position)))
                if entry is None:
                    continue
                for name in overlay.fields:
                    if entry.get(name) is not None:
                        record[name] = copy.deepcopy(entry[name])
                        updated += 1

            outcome.applied_overlays.append(overlay.state_key)
            logger.debug("overlay_applied", overlay=overlay.state_key, fields_updated=updated)

        outcome.json = json.dumps({self.output_key: merged}, ensure_ascii=False)
        logger.info(
            "overlay_merge_complete",
            records=len(merged),
            applied=outcome.applied_overlays,
            skipped=outcome.skipped_overlays,
        )
        return outcome

    def _fallback(self, overlay_jsons: Mapping[str, str]) -> MergeOutcome:
        for key in self.fallback_keys:
            overlay = next(o for o in self.overlays if o.state_key == key)
            records = _records_in(loads_or_none(overlay_jsons.get(key)), overlay.array_keys)
            if records is not None:
                logger.warning("overlay_merge_base_unparsable_using_fallback", fallback=key)
                return MergeOutcome(
                    json=json.dumps({self.output_key: records}, ensure_ascii=False),
                    record_count=len(records),
                    used_fallback=True,
                )
        raise MergeError(f"Base collection '{self.base_key}' is unparsable and no fallback is available")

    def run_step(self, inputs: Mapping[str, str]) -> str:
        """Run as a pipeline step over state inputs keyed by state name."""
        return self.merge(inputs.get(self.base_key), inputs).json


def create_enrichment_merger() -> FieldOverlayMerger:
    """Merger for the country, title and scoring enrichments."""
    return FieldOverlayMerger(
        base_key="classifiedCandidates",
        overlays=[
            OverlaySpec(
                state_key="countryOverrides",
                fields=("isCsm", "countryProfileApplied", "countryOverrideNote"),
                array_keys=("country_overrides",),
            ),
            OverlaySpec(
                state_key="titleExtractions",
                fields=("jobTitle", "personalTitle", "anchorNote"),
                array_keys=("title_extractions",),
            ),
            OverlaySpec(
                state_key="scoredCandidates",
                fields=("score", "scoreBreakdown", "qualityGateNotes"),
                array_keys=("scored_candidates",),
            ),
        ],
        fallback_keys=("scoredCandidates",),
    )
