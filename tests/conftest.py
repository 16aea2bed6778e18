"""Pytest configuration and fixtures."""

import json
import re
import threading

import pytest

from csm_pipeline.config.settings import ControllerConfig
from csm_pipeline.config.steps import STEP_CATALOG
from csm_pipeline.models import MergeStrategy
from csm_pipeline.processing.record_batcher import locate_records

PAGE_PATTERN = re.compile(r"Page (\d+)\. (.*)", re.DOTALL)
NAME_PATTERN = re.compile(r"(Director|Auditor|Secretary) (\w+) (\w+)")


def records_of(payload_json: str) -> list[dict]:
    """Records of a step payload, in order."""
    located = locate_records(json.loads(payload_json))
    assert located is not None, payload_json
    return located[1]


def make_document(num_pages: int, people: dict[int, str] | None = None) -> str:
    """Build a form-feed delimited document.

    Args:
        num_pages: Number of pages.
        people: Page number -> "Role First Last" mentions placed on that page.
    """
    people = people or {}
    pages = []
    for n in range(1, num_pages + 1):
        text = f"Page {n}. Annual report narrative for page {n}."
        if n in people:
            text += f" {people[n]} attended the meeting."
        pages.append(text)
    return "\f".join(pages)


# Scripted step behaviour: each returns the step's output JSON for its inputs


def fake_extract(inputs: dict[str, str]) -> str:
    found = []
    for page in inputs["sourceText"].split("\f"):
        match = PAGE_PATTERN.match(page.strip())
        if not match:
            continue
        for role, first, last in NAME_PATTERN.findall(match.group(2)):
            found.append({
                "rawName": f"{first} {last}",
                "role": role,
                "pageNumber": int(match.group(1)),
                "documentName": "report.pdf",
            })
    return json.dumps({"raw_candidates": found})


def fake_classify_sources(inputs: dict[str, str]) -> str:
    names = json.loads(inputs["fileNames"])
    return json.dumps({
        "source_classification": [
            {"documentName": name, "admissionRank": i} for i, name in enumerate(names, start=1)
        ]
    })


def fake_normalize(inputs: dict[str, str]) -> str:
    raw = json.loads(inputs["rawNames"])["raw_candidates"]
    candidates = []
    for i, c in enumerate(raw, start=1):
        first, last = c["rawName"].split(" ", 1)
        candidates.append({
            "id": i,
            "firstName": first,
            "lastName": last,
            "role": c["role"],
            "pageNumber": c["pageNumber"],
            "documentName": c["documentName"],
        })
    return json.dumps({"normalized_candidates": candidates, "entities_found": [c["rawName"] for c in raw]})


def fake_dedup(inputs: dict[str, str]) -> str:
    return json.dumps({"candidates": records_of(inputs["normalizedCandidates"])})


def fake_classify(inputs: dict[str, str]) -> str:
    records = records_of(inputs["dedupedCandidates"])
    return json.dumps({
        "classified_candidates": [{**r, "isCsm": r.get("role") == "Director"} for r in records]
    })


def fake_titles(inputs: dict[str, str]) -> str:
    records = records_of(inputs["classifiedCandidates"])
    return json.dumps({
        "title_extractions": [
            {"id": r["id"], "jobTitle": r.get("role"), "personalTitle": ""} for r in records
        ]
    })


def fake_score(inputs: dict[str, str]) -> str:
    records = records_of(inputs["classifiedCandidates"])
    return json.dumps({"scored_candidates": [{"id": r["id"], "score": 0.9} for r in records]})


def fake_reason(inputs: dict[str, str]) -> str:
    records = records_of(inputs["enrichedCandidates"])
    return json.dumps({
        "candidates": [
            {**r, "reason": "Board member" if r.get("isCsm") else "Not a governance role"} for r in records
        ]
    })


def fake_format(inputs: dict[str, str]) -> str:
    records = records_of(inputs["reasonedCandidates"])
    return json.dumps({
        "extracted_records": [
            {
                "id": r["id"],
                "firstName": r["firstName"],
                "middleName": "",
                "lastName": r["lastName"],
                "personalTitle": r.get("personalTitle", ""),
                "jobTitle": r.get("jobTitle"),
                "documentName": r["documentName"],
                "pageNumber": r["pageNumber"],
                "reason": r["reason"],
                "isCsm": r["isCsm"],
            }
            for r in records
        ]
    })


def fake_refine(inputs: dict[str, str]) -> str:
    return inputs["finalOutput"]


DEFAULT_RESPONSES = {
    "csm-candidate-extractor": fake_extract,
    "csm-source-classifier": fake_classify_sources,
    "csm-name-normalizer": fake_normalize,
    "csm-dedup-linker": fake_dedup,
    "csm-classifier": fake_classify,
    "csm-country-override": json.dumps({"country_overrides": []}),
    "csm-title-extractor": fake_titles,
    "csm-scoring-engine": fake_score,
    "csm-reason-assembler": fake_reason,
    "csm-output-formatter": fake_format,
    "csm-extraction-critic": json.dumps({"extraction_score": 0.95, "issues": [], "summary": "Looks good"}),
    "csm-output-refiner": fake_refine,
}


class FakeStepInvoker:
    """Scripted StepInvoker that records every call.

    A response may be a JSON string, a list of strings consumed in order,
    a callable taking the step inputs, or an exception to raise.
    """

    def __init__(self, responses: dict | None = None):
        self.responses = {**DEFAULT_RESPONSES, **(responses or {})}
        self.calls: list[tuple[str, dict[str, str]]] = []
        self._lock = threading.Lock()

    def invoke(self, step_name: str, inputs: dict[str, str]) -> dict[str, str]:
        with self._lock:
            self.calls.append((step_name, dict(inputs)))
            response = self.responses[step_name]
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]

        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(inputs)
        return {STEP_CATALOG[step_name].output: response}

    def call_count(self, step_name: str) -> int:
        return sum(1 for name, _ in self.calls if name == step_name)

    @property
    def step_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def fake_invoker() -> FakeStepInvoker:
    return FakeStepInvoker()


@pytest.fixture
def controller_config() -> ControllerConfig:
    """Small budgets so test documents exercise both paths."""
    return ControllerConfig.build(
        token_budget=100,
        pages_per_chunk=20,
        overlap_pages=5,
        batch_size=50,
        max_refinement_iterations=3,
        quality_threshold=0.85,
        merge_strategy=MergeStrategy.DETERMINISTIC,
    )


@pytest.fixture
def short_document() -> str:
    """Two pages, well under the token budget."""
    return "Page 1. Auditor Mark Kent signed\fPage 2. Director Jane Doe chaired"


@pytest.fixture
def long_document() -> str:
    """Forty-five pages; Jane Doe sits in the overlap of the first two chunks."""
    return make_document(45, {
        5: "Auditor Mark Kent",
        18: "Director Jane Doe",
        40: "Director John Roe",
    })


@pytest.fixture
def file_manifest() -> str:
    return json.dumps(["report.pdf"])
