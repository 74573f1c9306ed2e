"""
Azure Data Lake Storage Gen2 sink.

Rows are serialized to a local staging file exactly like the local sink.
On close the finished file is uploaded to
`<prefix><entity>/<entity>__<start>.csv`; a successful upload deletes the
local copy, a failed one keeps it and raises SinkUploadError pointing at
it, so nothing exported is silently lost.
"""
from datetime import datetime
from typing import Optional

from trickle.core.sink import DEFAULT_FLUSH_EVERY, Sink
from trickle.utility.azure_adls import ADLSOperations
from trickle.utility.exceptions import RemoteStorageError, SinkUploadError
from trickle.utility.path_helper import PathHelper


class ADLSSink(Sink, sink_type="adls"):
    """Stages locally, uploads on close."""

    def __init__(
        self,
        entity_name: str,
        window_start: datetime,
        export_dir: str,
        operations: ADLSOperations,
        prefix: str = "",
        flush_every: int = DEFAULT_FLUSH_EVERY,
    ):
        super().__init__(entity_name, window_start, export_dir, flush_every=flush_every)
        self.operations = operations
        self.remote_key = PathHelper.remote_output_key(
            prefix, entity_name, window_start
        )

    async def close(self) -> Optional[str]:
        """
        Finalize locally, then upload.

        Returns:
            The remote key of the uploaded file

        Raises:
            SinkUploadError: If the upload failed; `local_path` holds the
                retained local file
        """
        local_path = self.finalize_local()
        try:
            await self.operations.upload_file(str(local_path), self.remote_key)
        except (RemoteStorageError, TimeoutError) as e:
            raise SinkUploadError(
                f"Upload to {self.remote_key} failed, local copy kept at "
                f"{local_path}: {e}",
                operation="upload output",
                local_path=str(local_path),
            ) from e

        try:
            local_path.unlink()
        except OSError as e:
            self.logger.warning(f"Uploaded but could not delete {local_path}: {e}")

        self.logger.debug(f"Uploaded {self.row_count:,} rows to {self.remote_key}")
        return self.remote_key
