"""Exception types raised by the extraction pipeline."""


class PipelineError(Exception):
    """Base class for pipeline errors."""

    pass


class ConfigurationError(PipelineError):
    """Invalid chunking, batching, overlay or step-sequence configuration.

    Raised before any step executes.
    """

    pass


class MissingStateError(PipelineError):
    """A step input was read from the pipeline state but never produced."""

    def __init__(self, name: str, step: str | None = None):
        self.name = name
        self.step = step
        where = f" (required by {step})" if step else ""
        super().__init__(f"Pipeline state has no value for '{name}'{where}")


class StepInvocationError(PipelineError):
    """A step failed after exhausting its retries."""

    def __init__(self, step: str, message: str, attempts: int | None = None):
        self.step = step
        self.attempts = attempts
        super().__init__(f"Step '{step}' failed: {message}")


class MergeError(PipelineError):
    """No usable record collection could be assembled."""

    pass


class ParseError(PipelineError):
    """A step output could not be parsed as JSON."""

    pass
