"""Utility functions and helpers."""

from .equality import shallow_equal
from .logging import setup_logging

__all__ = ["shallow_equal", "setup_logging"]
