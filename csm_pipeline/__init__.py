"""CSM person extraction pipeline controller."""

__version__ = "0.1.0"
