"""
Logging setup shared by the CLI and library callers.
"""

from .setup import configure_logging  # noqa: F401

__all__ = ["configure_logging"]
