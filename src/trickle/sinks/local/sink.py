"""
Local file sink: writes the CSV straight into the export directory.
"""
from typing import Optional

from trickle.core.sink import Sink


class LocalSink(Sink, sink_type="local"):
    """
    Writes `<export_dir>/<entity>__<start>.csv`.

    The staging file is renamed to its final name on close, so the final
    name only ever holds a complete file.
    """

    async def close(self) -> Optional[str]:
        final_path = self.finalize_local()
        self.logger.debug(f"Wrote {self.row_count:,} rows to {final_path}")
        return str(final_path)
