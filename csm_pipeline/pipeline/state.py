"""Pipeline state: the named JSON store shared by steps, and the graph state."""

import json
import operator
import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Annotated, Any, TypedDict

import structlog

from csm_pipeline.errors import MissingStateError

logger = structlog.get_logger(__name__)

# Sentinel for names that were absent before an overwrite
_ABSENT = object()


class PipelineState:
    """Mutable name -> JSON string store for one pipeline run.

    Steps read their declared inputs from the store and write their single
    output back to it. Chunk and batch units temporarily overwrite shared
    names with unit-local values through overwritten(), which restores the
    previous values (or their absence) on exit.
    """

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values: dict[str, str] = {}
        self._lock = threading.RLock()
        for name, value in (values or {}).items():
            self.write(name, value)

    @staticmethod
    def _encode(value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False)

    def read(self, name: str, step: str | None = None) -> str:
        """Read a value, raising MissingStateError if it was never written."""
        with self._lock:
            if name not in self._values:
                raise MissingStateError(name, step)
            return self._values[name]

    def get(self, name: str, default: str | None = None) -> str | None:
        with self._lock:
            return self._values.get(name, default)

    def write(self, name: str, value: Any) -> None:
        """Write a value; non-string values are JSON-encoded."""
        with self._lock:
            self._values[name] = self._encode(value)

    def delete(self, name: str) -> None:
        with self._lock:
            self._values.pop(name, None)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._values

    def names(self) -> set[str]:
        with self._lock:
            return set(self._values)

    def read_inputs(self, names: Iterable[str], step: str | None = None) -> dict[str, str]:
        """Read several values at once, in the given order."""
        return {name: self.read(name, step) for name in names}

    def seed_defaults(self, defaults: Mapping[str, Any]) -> list[str]:
        """Write defaults for names that are not present yet.

        Returns:
            Names that were seeded.
        """
        seeded = []
        with self._lock:
            for name, value in defaults.items():
                if name not in self._values:
                    self._values[name] = self._encode(value)
                    seeded.append(name)
        if seeded:
            logger.debug("state_defaults_seeded", names=seeded)
        return seeded

    @contextmanager
    def overwritten(self, values: Mapping[str, Any]) -> Iterator["PipelineState"]:
        """Temporarily overwrite names, restoring the prior values on exit.

        Names that did not exist before are removed again. Restoration also
        happens when the body raises.
        """
        with self.preserved(values.keys()):
            with self._lock:
                for name, value in values.items():
                    self._values[name] = self._encode(value)
            yield self

    @contextmanager
    def preserved(self, names: Iterable[str]) -> Iterator["PipelineState"]:
        """Restore the given names to their current values (or absence) on exit."""
        with self._lock:
            saved = {name: self._values.get(name, _ABSENT) for name in names}
        try:
            yield self
        finally:
            with self._lock:
                for name, previous in saved.items():
                    if previous is _ABSENT:
                        self._values.pop(name, None)
                    else:
                        self._values[name] = previous

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._values)

    def clone(self) -> "PipelineState":
        """Independent copy for a concurrently executed unit."""
        return PipelineState(self.snapshot())

    def __repr__(self) -> str:
        return f"PipelineState(names={sorted(self.names())})"


class GraphState(TypedDict, total=False):
    """State that flows through the LangGraph controller graph.

    Step payloads live in the PipelineState store; this dict carries the
    control data the graph nodes exchange.
    """

    # Input
    scope: PipelineState
    run_context: Any  # RunContext

    # Routing
    path: str  # ExecutionPath value
    estimated_tokens: int

    # Chunked path
    chunks: list[dict]  # List[ChunkModel]
    chunk_count: int
    failed_chunks: list[int]
    merge_stats: dict | None  # MergeStats
    candidate_count: int

    # Reduce
    batch_count: int
    failed_batches: list[int]

    # Tail
    final_output: str
    review: dict | None  # ReviewResult
    quality_met: bool
    refinement_iterations: int
    critic_calls: int

    # Error tracking
    failed_stage: str | None  # Set when a whole-set stage fails
    errors: Annotated[list[dict], operator.add]  # List[ProcessingError]
    warnings: Annotated[list[dict], operator.add]  # List[ProcessingError]


def create_initial_state(store: PipelineState, context: Any) -> GraphState:
    """Create initial graph state for a run.

    Args:
        store: Pipeline state seeded with the document and file manifest.
        context: Collaborators for this run.

    Returns:
        Initial GraphState dict.
    """
    return GraphState(
        scope=store,
        run_context=context,
        path="",
        estimated_tokens=0,
        chunks=[],
        chunk_count=0,
        failed_chunks=[],
        merge_stats=None,
        candidate_count=0,
        batch_count=0,
        failed_batches=[],
        final_output="",
        review=None,
        quality_met=False,
        refinement_iterations=0,
        critic_calls=0,
        failed_stage=None,
        errors=[],
        warnings=[],
    )
