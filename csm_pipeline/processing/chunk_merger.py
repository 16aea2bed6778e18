"""Deterministic merge of per-chunk extraction results."""

import json
import re

import structlog
from rapidfuzz import fuzz

from csm_pipeline.errors import MergeError
from csm_pipeline.llm.json_parsing import loads_or_none
from csm_pipeline.models import MergedResult, MergeStats
from csm_pipeline.processing.record_batcher import locate_records, renumber

logger = structlog.get_logger(__name__)

# Threshold for treating two overlap-zone names as the same person
NAME_MATCH_THRESHOLD = 90

# Candidate fields that identify the same person on the same page
DEDUP_KEY_FIELDS = ("dedupKey", "asciiDedupKey")

SOURCE_ARRAY_KEYS = ("source_classification", "global_source_classification", "sources")


def candidate_name(candidate: dict) -> str:
    """Normalized display name of a candidate, empty if it has none."""
    name = candidate.get("fullName") or candidate.get("name") or candidate.get("rawName")
    if not name:
        parts = [candidate.get(k) for k in ("firstName", "middleName", "lastName")]
        name = " ".join(str(p) for p in parts if p)
    name = re.sub(r"[^\w\s]", " ", str(name or "").lower())
    return " ".join(name.split())


def absolute_page(page, chunk: dict) -> int | None:
    """Map a candidate page number to an absolute document page.

    A page inside the chunk's range is taken as absolute; a smaller page
    is read as relative to the chunk start.
    """
    if isinstance(page, str) and page.strip().isdigit():
        page = int(page)
    if not isinstance(page, int) or isinstance(page, bool):
        return None
    start = chunk.get("pageStart") or 1
    end = chunk.get("pageEnd") or start
    if start <= page <= end:
        return page
    if 1 <= page <= end - start + 1:
        return page + start - 1
    return page


def _source_entries(value) -> list[dict]:
    if isinstance(value, list):
        return [e for e in value if isinstance(e, dict)]
    if isinstance(value, dict):
        for key in SOURCE_ARRAY_KEYS:
            if isinstance(value.get(key), list):
                return [e for e in value[key] if isinstance(e, dict)]
    return []


def _rank(entry: dict) -> float:
    rank = entry.get("admissionRank")
    return rank if isinstance(rank, (int, float)) and not isinstance(rank, bool) else float("inf")


def _completeness(entry: dict) -> int:
    return sum(1 for value in entry.values() if value not in (None, ""))


def merge_source_classifications(chunks: list[dict]) -> list[dict]:
    """Union per-chunk source classifications, one entry per document.

    The entry with the most populated fields wins. Entries are ordered by
    their admission rank and re-ranked 1..n.
    """
    by_document: dict[str, dict] = {}
    order: list[str] = []
    for chunk in chunks:
        for entry in _source_entries(chunk.get("sourceClassification")):
            name = entry.get("documentName") or ""
            if name not in by_document:
                by_document[name] = entry
                order.append(name)
            elif _completeness(entry) > _completeness(by_document[name]):
                by_document[name] = entry

    ranked = sorted(order, key=lambda n: (_rank(by_document[n]), order.index(n)))
    return [{**by_document[name], "admissionRank": i} for i, name in enumerate(ranked, start=1)]


def merge_chunk_results(chunk_results_json: str, name_threshold: int = NAME_MATCH_THRESHOLD) -> MergedResult:
    """Merge per-chunk candidates into one document-wide collection.

    A candidate from a later chunk whose page lies in that chunk's overlap
    zone is dropped when its name matches a candidate already kept from a
    lower-indexed chunk. The earlier occurrence is kept as-is; field
    differences between the two occurrences are not reconciled. Candidates
    sharing a dedup key with a kept candidate are dropped as well.

    Args:
        chunk_results_json: {"chunks": [...]} payload from the map phase.
        name_threshold: rapidfuzz ratio at or above which names match.

    Returns:
        MergedResult with candidates in reading order and ids 1..n.

    Raises:
        MergeError: If the payload has no chunk list.
    """
    payload = loads_or_none(chunk_results_json)
    chunks = payload.get("chunks") if isinstance(payload, dict) else payload
    if not isinstance(chunks, list):
        raise MergeError("Chunk results payload has no chunk list")

    chunks = sorted(
        (c for c in chunks if isinstance(c, dict)),
        key=lambda c: c.get("chunkIndex", 0),
    )

    kept: list[tuple[int, int | None, int, str, dict]] = []
    seen_keys: set[str] = set()
    total_before = 0
    overlap_duplicates = 0

    for chunk in chunks:
        chunk_index = chunk.get("chunkIndex", 0)
        located = locate_records(chunk.get("normalizedCandidates"))
        if located is None:
            logger.warning("chunk_merge_no_candidates", chunk_index=chunk_index)
            continue

        overlap_start = chunk.get("overlapStartPage")
        overlap_end = chunk.get("overlapEndPage")

        for position, candidate in enumerate(located[1], start=1):
            if not isinstance(candidate, dict):
                continue
            total_before += 1
            page = absolute_page(candidate.get("pageNumber"), chunk)
            name = candidate_name(candidate)

            in_overlap = (
                chunk_index > 0
                and page is not None
                and isinstance(overlap_start, int)
                and isinstance(overlap_end, int)
                and overlap_start <= page <= overlap_end
            )
            if in_overlap and name and _matches_earlier(name, candidate, chunk_index, kept, name_threshold):
                overlap_duplicates += 1
                logger.debug("overlap_duplicate_dropped", chunk_index=chunk_index, page=page, name=name)
                continue

            keys = {v for v in (candidate.get(k) for k in DEDUP_KEY_FIELDS) if isinstance(v, str) and v}
            if keys & seen_keys:
                logger.debug("dedup_key_duplicate_dropped", chunk_index=chunk_index, keys=sorted(keys))
                continue
            seen_keys |= keys

            record = dict(candidate)
            if page is not None:
                record["pageNumber"] = page
            original_id = candidate.get("id") if isinstance(candidate.get("id"), int) else position
            kept.append((chunk_index, page, original_id, name, record))

    kept.sort(key=lambda k: (k[1] if k[1] is not None else float("inf"), k[0], k[2]))
    merged = renumber([k[4] for k in kept])

    stats = MergeStats(
        total_chunks=len(chunks),
        total_before=total_before,
        total_after=len(merged),
        duplicates_removed=total_before - len(merged),
        overlap_duplicates=overlap_duplicates,
    )

    logger.info(
        "chunk_results_merged",
        chunks=stats.total_chunks,
        before=stats.total_before,
        after=stats.total_after,
        overlap_duplicates=stats.overlap_duplicates,
    )

    return MergedResult(
        merged_candidates=merged,
        global_source_classification=merge_source_classifications(chunks),
        merge_stats=stats,
    )


def _matches_earlier(name: str, candidate: dict, chunk_index: int, kept: list, threshold: int) -> bool:
    document = candidate.get("documentName")
    for other_chunk, _, _, other_name, other in kept:
        if other_chunk >= chunk_index or not other_name:
            continue
        other_document = other.get("documentName")
        if document and other_document and document != other_document:
            continue
        if fuzz.ratio(name, other_name) >= threshold:
            return True
    return False


def merged_result_json(result: MergedResult) -> str:
    """Serialize a merge result in the merge step's wire format."""
    data = result.model_dump(exclude={"merge_stats"})
    data["merge_stats"] = result.merge_stats.model_dump(by_alias=True) if result.merge_stats else None
    return json.dumps(data, ensure_ascii=False)


def run_merge_step(inputs: dict[str, str]) -> str:
    """Run the deterministic merge as the chunk-merger step."""
    return merged_result_json(merge_chunk_results(inputs["chunkResults"]))
