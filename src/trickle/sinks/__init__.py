"""
Collection of output sinks.

Importing this package registers every sink type with Sink.create().
"""
from .adls import ADLSSink
from .local import LocalSink

__all__ = ["ADLSSink", "LocalSink"]
