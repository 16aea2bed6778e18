"""Sequential or thread-pooled execution of independent units."""

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from csm_pipeline.errors import StepInvocationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class UnitResult(Generic[R]):
    """Outcome of one unit: a value, or the step failure that stopped it."""

    index: int
    value: R | None = None
    error: StepInvocationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _capture(fn: Callable[[T], R], index: int, item: T) -> UnitResult[R]:
    try:
        return UnitResult(index=index, value=fn(item))
    except StepInvocationError as e:
        return UnitResult(index=index, error=e)


def run_units(fn: Callable[[T], R], items: Sequence[T], max_workers: int = 1) -> list[UnitResult[R]]:
    """Run fn over items and return results in item order.

    Step failures are captured per unit. Any other exception propagates,
    as it indicates a wiring or configuration defect rather than a
    failed inference call.

    Args:
        fn: Unit function.
        items: Unit inputs.
        max_workers: Threads to use; 1 runs in the calling thread.

    Returns:
        One UnitResult per item, ordered by index.
    """
    if max_workers <= 1 or len(items) <= 1:
        return [_capture(fn, i, item) for i, item in enumerate(items)]

    workers = min(max_workers, len(items))
    logger.debug("running_units_in_parallel", units=len(items), workers=workers)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_capture, fn, i, item) for i, item in enumerate(items)]
        # result() re-raises non-step exceptions from the unit
        return [future.result() for future in futures]
