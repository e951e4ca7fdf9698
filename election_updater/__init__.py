"""Daily research-and-update pipeline for election candidate data."""

__version__ = "0.1.0"
