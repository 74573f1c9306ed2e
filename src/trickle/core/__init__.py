"""
Core components of trickle.
"""
from .config import ExportConfig, FailurePolicy, RemoteConfig, SourceConfig
from .orchestrator import Orchestrator
from .results import EntityResult, RunOutcome, RunResult
from .sink import Sink
from .source import RowCursor, RowSource
from .templates import TemplateLoader
from .watermark import EntityWatermark, WatermarkStore
from .window import RunWindow
from .workspace import Workspace

__all__ = [
    "EntityResult",
    "EntityWatermark",
    "ExportConfig",
    "FailurePolicy",
    "Orchestrator",
    "RemoteConfig",
    "RowCursor",
    "RowSource",
    "RunOutcome",
    "RunResult",
    "RunWindow",
    "Sink",
    "SourceConfig",
    "TemplateLoader",
    "WatermarkStore",
    "Workspace",
]
