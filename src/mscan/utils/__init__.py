"""Utility functions for mscan."""

from mscan.utils.logging import setup_logging, log_progress

__all__ = [
    "setup_logging",
    "log_progress",
]
