"""
Utility functions and classes for trickle.
"""
from .exceptions import (
    ConfigError,
    RemoteStorageError,
    RunCancelledError,
    SinkError,
    SinkUploadError,
    SinkWriteError,
    SourceConnectionError,
    SourceError,
    SourceReadError,
    TemplateError,
    TrickleError,
    WatermarkError,
    WatermarkNotFoundError,
    WatermarkPersistError,
)

__all__ = [
    "TrickleError",
    "ConfigError",
    "SourceError",
    "SourceConnectionError",
    "SourceReadError",
    "SinkError",
    "SinkWriteError",
    "SinkUploadError",
    "RemoteStorageError",
    "WatermarkError",
    "WatermarkNotFoundError",
    "WatermarkPersistError",
    "TemplateError",
    "RunCancelledError",
]
