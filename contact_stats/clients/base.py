from datetime import datetime
from typing import Protocol


class QueryFailure(Exception):
    """Raised when a count query fails for any reason."""


class CountSource(Protocol):
    """Read-only source of per-day contact counts."""

    async def fetch_by_week_tag(self, week_index: int) -> dict[str, int]:
        """Return counts keyed by `YYYY-MM-DD` for records tagged with the week."""
        ...

    async def fetch_count_in_range(self, start: datetime, end: datetime) -> int:
        """Return the number of records timestamped within [start, end]."""
        ...
