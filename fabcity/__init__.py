"""Fab City Assistant backend and resource viewer core."""

from .logging_config import configure_logging

__version__ = "1.0.0"

__all__ = ["configure_logging", "__version__"]
