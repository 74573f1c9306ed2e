"""
Base Sink class: streaming CSV serialization shared by every destination.

A Sink receives one entity's rows for one window and owns its destination
for its whole lifetime: create, write, flush, then finalize or remove.
Rows are written to a staging file (`<final name>.part`) next to the final
path; only a finished file is renamed into place, so an interrupted run
never leaves a half-written CSV under the final name.

Serialization is the same for every destination: comma-delimited, fields
quoted only when they contain a comma, a quote or a line break, quotes
doubled, LF line endings. Subclasses differ only in what `close()` does
with the finished file.

Example:
    ```python
    class MySink(Sink, sink_type="my_type"):
        async def close(self) -> Optional[str]:
            path = self.finalize_local()
            ...
    ```
"""
import csv
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Type

from trickle.core.formatting import format_value
from trickle.messages import get_logger
from trickle.utility.exceptions import SinkWriteError
from trickle.utility.path_helper import PathHelper

DEFAULT_FLUSH_EVERY = 1000


class Sink(ABC):
    """Base class for all output destinations."""

    _registry: Dict[str, Type["Sink"]] = {}

    def __init_subclass__(cls, sink_type: Optional[str] = None):
        super().__init_subclass__()
        if sink_type:
            cls._registry[sink_type] = cls

    @classmethod
    def create(
        cls,
        sink_type: str,
        entity_name: str,
        window_start: datetime,
        export_dir: str,
        **kwargs: Any,
    ) -> "Sink":
        """
        Create a Sink instance using the registry pattern.

        Raises:
            ValueError: If the sink type is not registered
        """
        if sink_type not in cls._registry:
            raise ValueError(f"Unknown sink type: {sink_type}")
        return cls._registry[sink_type](entity_name, window_start, export_dir, **kwargs)

    def __init__(
        self,
        entity_name: str,
        window_start: datetime,
        export_dir: str,
        flush_every: int = DEFAULT_FLUSH_EVERY,
    ):
        self.entity_name = entity_name
        self.window_start = window_start
        self.flush_every = flush_every
        self.final_path = PathHelper.local_output_path(
            export_dir, entity_name, window_start
        )
        self.staging_path = PathHelper.staging_path(self.final_path)
        self.row_count = 0
        self.logger = get_logger(f"trickle.entity.{entity_name}")

        self._row_buffer: Optional[List[Any]] = None
        self._closed = False
        self._open()

    def _open(self) -> None:
        try:
            self.staging_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.staging_path, "w", encoding="utf-8", newline="")
        except OSError as e:
            raise SinkWriteError(
                f"Cannot create {self.staging_path}: {e}", operation="create output"
            ) from e
        self._writer = csv.writer(
            self._file,
            delimiter=",",
            quotechar='"',
            lineterminator="\n",
            quoting=csv.QUOTE_MINIMAL,
        )

    # Writing

    def write_headers(self, columns: Sequence[str]) -> None:
        """Write the header row and size the row buffer to match."""
        self._ensure_open("write headers")
        try:
            self._writer.writerow(columns)
            self._file.flush()
        except (OSError, csv.Error) as e:
            raise SinkWriteError(str(e), operation="write headers") from e
        self._row_buffer = [None] * len(columns)

    def get_row_buffer(self) -> List[Any]:
        """
        Destination slots for the next row.

        The same list is returned for every row; fill it (for example with
        RowCursor.scan) and call write_buffered_row().
        """
        if self._row_buffer is None:
            raise SinkWriteError(
                "Headers must be written before rows", operation="get row buffer"
            )
        return self._row_buffer

    def write_buffered_row(self) -> None:
        self._ensure_open("write row")
        if self._row_buffer is None:
            raise SinkWriteError(
                "Headers must be written before rows", operation="write row"
            )
        try:
            self._writer.writerow(map(format_value, self._row_buffer))
        except (OSError, csv.Error) as e:
            raise SinkWriteError(
                f"Row {self.row_count + 1}: {e}", operation="write row"
            ) from e
        self.row_count += 1
        if self.row_count % self.flush_every == 0:
            self.flush()

    def flush(self) -> None:
        self._ensure_open("flush")
        try:
            self._file.flush()
        except OSError as e:
            raise SinkWriteError(str(e), operation="flush") from e

    # Finishing

    def remove(self) -> bool:
        """
        Discard the destination if no data rows were written.

        Returns True when the staging file was removed, False when rows
        exist and the sink was left untouched.
        """
        if self.row_count > 0:
            return False
        self.discard()
        return True

    def discard(self) -> None:
        """Close and delete the staging file, whatever it contains."""
        self._close_file()
        self._closed = True
        try:
            self.staging_path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Could not delete {self.staging_path}: {e}")

    def finalize_local(self) -> Path:
        """Flush, close and atomically rename the staging file to its final name."""
        self._ensure_open("close")
        try:
            self._file.flush()
            self._file.close()
            self.staging_path.replace(self.final_path)
        except OSError as e:
            raise SinkWriteError(
                f"Cannot finalize {self.final_path}: {e}", operation="close"
            ) from e
        finally:
            self._closed = True
        return self.final_path

    @abstractmethod
    async def close(self) -> Optional[str]:
        """
        Finish the destination.

        Returns:
            Location of the finished artifact
        """
        pass

    @property
    def closed(self) -> bool:
        return self._closed

    def _close_file(self) -> None:
        if not self._file.closed:
            try:
                self._file.close()
            except OSError as e:
                self.logger.warning(f"Error closing {self.staging_path}: {e}")

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise SinkWriteError("Sink is already closed", operation=operation)
