"""Configuration, prompts and the step catalog."""

from .settings import ControllerConfig, Settings, get_settings
from .steps import STEP_CATALOG, StepSpec, validate_sequence

__all__ = [
    "ControllerConfig",
    "Settings",
    "get_settings",
    "STEP_CATALOG",
    "StepSpec",
    "validate_sequence",
]
