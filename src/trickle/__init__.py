"""
Incremental, watermark-driven exports from relational sources to CSV.
"""
from .core import (
    EntityResult,
    ExportConfig,
    FailurePolicy,
    Orchestrator,
    RowCursor,
    RowSource,
    RunOutcome,
    RunResult,
    Sink,
    WatermarkStore,
)

# Registry Initialization
# Sink and source implementations register themselves on import, which
# makes them available through Sink.create() and RowSource.create().
from .sinks import ADLSSink, LocalSink  # noqa: F401
from .sources import OdbcRowSource  # noqa: F401

__all__ = [
    "EntityResult",
    "ExportConfig",
    "FailurePolicy",
    "Orchestrator",
    "RowCursor",
    "RowSource",
    "RunOutcome",
    "RunResult",
    "Sink",
    "WatermarkStore",
]
