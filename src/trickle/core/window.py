"""
Run windows and the timestamp format shared by state files and queries.

Every timestamp trickle reads or writes (watermarks in the state file, the
two bind parameters handed to the query, the window start embedded in file
names) uses one fixed pattern: `YYYY-MM-DDTHH:MM:SS`, no timezone and no
fractional seconds. Values are kept as naive datetimes that are understood
to be UTC.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Values older tools wrote for "never synced"
EMPTY_TIMESTAMPS = ("", "null")


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Returns None for a missing value, an empty string or the literal
    "null". Raises ValueError for anything else that does not match
    TIMESTAMP_FORMAT.
    """
    if value is None or value.strip() in EMPTY_TIMESTAMPS:
        return None
    return datetime.strptime(value.strip(), TIMESTAMP_FORMAT)


def utc_now() -> datetime:
    """Current UTC time as a naive datetime truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


@dataclass(frozen=True)
class RunWindow:
    """
    Half-open interval [start, end) of changes exported for one entity.

    `end` is captured once per run and shared by every entity; `start` is
    the entity's last sync time, or `end` minus the lookback when the entity
    has never been synced.
    """

    start: datetime
    end: datetime

    @classmethod
    def for_entity(
        cls,
        last_sync_time: Optional[datetime],
        end: datetime,
        lookback_days: int,
    ) -> "RunWindow":
        if last_sync_time is None:
            return cls(start=end - timedelta(days=lookback_days), end=end)
        return cls(start=last_sync_time, end=end)

    def as_params(self) -> dict:
        """The two named bind parameters every query template receives."""
        return {
            "startDate": format_timestamp(self.start),
            "tillDate": format_timestamp(self.end),
        }
