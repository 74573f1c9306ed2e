"""
Message utilities for trickle.

- Logger: Human-readable, colour-coded output
- Summary: End-of-run summary formatting
"""
from trickle.messages.logger import TrickleLogger, get_logger

__all__ = ["TrickleLogger", "get_logger"]
