"""
Custom exceptions for trickle.

Every trickle error can carry the name of the operation that failed, so a
caller reading a single message can tell which step broke without walking
the full traceback. Wrap lower-level errors with `raise SpecificError(...)
from e` so the original cause stays attached.

Exception Hierarchy:
    TrickleError (base)
    ├── ConfigError - Invalid paths, timeouts or settings (fatal, pre-run)
    ├── SourceError
    │   ├── SourceConnectionError - Source unreachable (fatal, pre-run)
    │   └── SourceReadError - Query execution, row iteration or scan failures
    ├── SinkError
    │   ├── SinkWriteError - Local serialization or file system failures
    │   └── SinkUploadError - Remote upload failed, local copy retained
    ├── RemoteStorageError - Remote storage call failed (state mirror, uploads)
    ├── WatermarkError
    │   ├── WatermarkNotFoundError - Entity absent from the state file
    │   └── WatermarkPersistError - State file could not be written
    ├── TemplateError - Query template missing or unreadable
    └── RunCancelledError - Run was cancelled by the caller

Usage Guidelines:
    - Raise the most specific type you can; the orchestrator records the
      message on the entity result and the CLI maps fatal types to exit codes.
    - Pass `operation=` for anything that runs inside the per-entity loop.
"""
from typing import Optional


class TrickleError(Exception):
    """Base exception for all trickle errors."""

    def __init__(self, message: str = "", operation: Optional[str] = None):
        self.message = message
        self.operation = operation
        if operation:
            super().__init__(f"{operation}: {message}")
        else:
            super().__init__(message)


class ConfigError(TrickleError):
    """Configuration is invalid or could not be loaded."""

    pass


class SourceError(TrickleError):
    """Base exception for row source errors."""

    pass


class SourceConnectionError(SourceError):
    """Connection error when opening the row source."""

    pass


class SourceReadError(SourceError):
    """Error executing a query or reading rows from the source."""

    pass


class SinkError(TrickleError):
    """Base exception for sink errors."""

    pass


class SinkWriteError(SinkError):
    """Error writing serialized rows to the local staging file."""

    pass


class SinkUploadError(SinkError):
    """
    Upload of a finished file to remote storage failed.

    The local copy is kept on disk; `local_path` points at it so the caller
    can report or recover it.
    """

    def __init__(
        self,
        message: str = "",
        operation: Optional[str] = None,
        local_path: Optional[str] = None,
    ):
        super().__init__(message, operation)
        self.local_path = local_path


class RemoteStorageError(TrickleError):
    """A remote storage call failed after retries."""

    pass


class WatermarkError(TrickleError):
    """Base exception for watermark state errors."""

    pass


class WatermarkNotFoundError(WatermarkError):
    """Entity is not present in the watermark state."""

    pass


class WatermarkPersistError(WatermarkError):
    """Watermark state could not be written atomically."""

    pass


class TemplateError(TrickleError):
    """Query template is missing or cannot be read."""

    pass


class RunCancelledError(TrickleError):
    """The run was cancelled through its cancel signal."""

    pass
