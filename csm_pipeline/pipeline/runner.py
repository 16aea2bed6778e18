"""Executes declared steps against the pipeline state."""

import threading
from collections.abc import Iterable

import structlog

from csm_pipeline.config.steps import StepSpec
from csm_pipeline.errors import PipelineError, StepInvocationError
from csm_pipeline.llm.invoker import StepInvoker
from csm_pipeline.pipeline.state import PipelineState

logger = structlog.get_logger(__name__)


class StepRunner:
    """Reads a step's inputs from state, invokes it and writes its output."""

    def __init__(self, invoker: StepInvoker):
        self.invoker = invoker
        self._calls = 0
        self._lock = threading.Lock()

    @property
    def calls(self) -> int:
        return self._calls

    def run(self, step: StepSpec, state: PipelineState) -> str:
        """Run one step.

        Args:
            step: Step to run.
            state: State to read inputs from and write the output to.

        Returns:
            The step's output JSON string.

        Raises:
            MissingStateError: If a declared input is absent.
            StepInvocationError: If the step fails or returns no output.
        """
        inputs = state.read_inputs(step.inputs, step.name)

        with self._lock:
            self._calls += 1

        logger.debug("step_start", step=step.name, inputs=list(step.inputs))
        try:
            outputs = self.invoker.invoke(step.name, inputs)
        except PipelineError:
            raise
        except Exception as e:
            raise StepInvocationError(step.name, f"{type(e).__name__}: {e}") from e

        value = (outputs or {}).get(step.output)
        if value is None:
            raise StepInvocationError(step.name, f"returned no value for '{step.output}'")

        state.write(step.output, value)
        return state.read(step.output)

    def run_sequence(self, steps: Iterable[StepSpec], state: PipelineState) -> None:
        """Run steps in order, stopping at the first failure."""
        for step in steps:
            self.run(step, state)
