"""Utility modules for execguard."""

from .logger import log_context, setup_logging

__all__ = [
    "log_context",
    "setup_logging",
]
