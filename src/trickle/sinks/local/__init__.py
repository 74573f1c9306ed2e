"""
Local file sink.
"""

from .sink import LocalSink

__all__ = ["LocalSink"]
