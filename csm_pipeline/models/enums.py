"""Enumeration types for the pipeline models."""

from enum import Enum


class ErrorSeverity(str, Enum):
    """Severity levels for processing errors."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class IssueSeverity(str, Enum):
    """Severity of an issue raised by the extraction critic."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class ExecutionPath(str, Enum):
    """Route taken through the controller."""

    DIRECT = "direct"
    CHUNKED = "chunked"


class MergeStrategy(str, Enum):
    """How per-chunk results are unified."""

    LLM = "llm"
    DETERMINISTIC = "deterministic"
