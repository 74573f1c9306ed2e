"""
Path conventions for export artifacts and remote keys.

All naming rules for output files live here so the local sink, the remote
sink and the watermark mirror agree on where things go:

    local file   <export_dir>/<entity>__<start>.csv
    remote file  <prefix><entity>/<entity>__<start>.csv
    remote state <prefix>state.json

`<start>` is the window start in `YYYY-MM-DDTHH:MM:SS` with colons replaced
by dashes, which keeps file names valid on every file system.
"""
from datetime import datetime
from pathlib import Path
from typing import Union

from trickle.core.window import format_timestamp

STATE_KEY_NAME = "state.json"
STAGING_SUFFIX = ".part"


class PathHelper:
    """Static helpers for output naming. Use directly without instantiation."""

    @staticmethod
    def normalize_prefix(prefix: str) -> str:
        """
        Normalize a remote key prefix.

        Strips leading and trailing slashes and appends exactly one trailing
        slash. An empty prefix stays empty.

        Examples:
            >>> PathHelper.normalize_prefix("/exports/crm/")
            'exports/crm/'
            >>> PathHelper.normalize_prefix("")
            ''
        """
        prefix = (prefix or "").strip().strip("/")
        return f"{prefix}/" if prefix else ""

    @staticmethod
    def safe_timestamp(window_start: datetime) -> str:
        """Window start formatted for use inside a file name."""
        return format_timestamp(window_start).replace(":", "-")

    @staticmethod
    def output_filename(entity_name: str, window_start: datetime) -> str:
        return f"{entity_name}__{PathHelper.safe_timestamp(window_start)}.csv"

    @staticmethod
    def local_output_path(
        export_dir: Union[str, Path], entity_name: str, window_start: datetime
    ) -> Path:
        return Path(export_dir) / PathHelper.output_filename(entity_name, window_start)

    @staticmethod
    def staging_path(final_path: Path) -> Path:
        """Sibling path the sink writes to until the file is finished."""
        return final_path.with_name(final_path.name + STAGING_SUFFIX)

    @staticmethod
    def remote_output_key(prefix: str, entity_name: str, window_start: datetime) -> str:
        return (
            f"{PathHelper.normalize_prefix(prefix)}{entity_name}/"
            f"{PathHelper.output_filename(entity_name, window_start)}"
        )

    @staticmethod
    def remote_state_key(prefix: str) -> str:
        return f"{PathHelper.normalize_prefix(prefix)}{STATE_KEY_NAME}"
