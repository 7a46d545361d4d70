import calendar
import logging
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from typing import Literal
from zoneinfo import ZoneInfo

from contact_stats.clients.base import CountSource
from contact_stats.clients.base import QueryFailure


logger = logging.getLogger(__name__)

QueryStyle = Literal["enumeration", "range"]
DAYS_PER_WEEK = 7


def week_start(anchor: date, week_index: int) -> date:
    """Return the first day of a 1-based week counted from the anchor date."""

    if week_index < 1:
        raise ValueError("week index must be >= 1")
    try:
        return anchor + timedelta(days=(week_index - 1) * DAYS_PER_WEEK)
    except OverflowError as exc:
        raise ValueError(f"week {week_index} is outside the calendar range") from exc


def week_dates(anchor: date, week_index: int) -> list[date]:
    first_day = week_start(anchor, week_index)
    try:
        return [first_day + timedelta(days=offset) for offset in range(DAYS_PER_WEEK)]
    except OverflowError as exc:
        raise ValueError(f"week {week_index} is outside the calendar range") from exc


def month_label(dates: Iterable[date]) -> str:
    """Join the distinct month names of `dates` in first-seen order."""

    months: list[str] = []
    for day in dates:
        name = calendar.month_name[day.month]
        if name not in months:
            months.append(name)
    return " - ".join(months)


def display_series(
    anchor: date, week_index: int, series: dict[str, int]
) -> list[tuple[str, int]]:
    """Pair each day of the week with its count, defaulting to 0."""

    days = [day.isoformat() for day in week_dates(anchor, week_index)]
    return [(day, series.get(day, 0)) for day in days]


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=tz)
    return start, end


async def fetch_week(
    source: CountSource,
    anchor: date,
    week_index: int,
    query_style: QueryStyle = "range",
    timezone: str = "UTC",
) -> tuple[dict[str, int], str]:
    """Fetch one week of counts and its month label.

    The enumeration style returns only the dates the source has records for.
    The range style issues one count query per day and always returns all
    seven days. `QueryFailure` from the source propagates to the caller.
    """

    days = week_dates(anchor, week_index)

    if query_style == "enumeration":
        series = dict(await source.fetch_by_week_tag(week_index))
    elif query_style == "range":
        tz = ZoneInfo(timezone)
        series = {}
        for day in days:
            start, end = day_bounds(day, tz)
            count = await source.fetch_count_in_range(start, end)
            series[day.isoformat()] = count or 0
    else:
        raise ValueError(f"unknown query style: {query_style}")

    return series, month_label(days)


@dataclass(frozen=True)
class WeekSnapshot:
    """Immutable view of the aggregator's observable state."""

    current_week: int
    is_loading: bool
    month_label: str
    series: dict[str, int] = field(default_factory=dict)
    has_loaded: bool = False


Subscriber = Callable[[WeekSnapshot], None]


class WeeklyAggregator:
    """Current-week pointer and the weekly series loaded for it.

    Loads never raise on source failures: the failure is logged and the state
    falls back to an empty series. Overlapping loads are resolved in favour
    of the most recently started one.
    """

    def __init__(
        self,
        source: CountSource,
        anchor_date: date,
        query_style: QueryStyle = "range",
        timezone: str = "UTC",
    ) -> None:
        if query_style not in ("enumeration", "range"):
            raise ValueError(f"unknown query style: {query_style}")
        ZoneInfo(timezone)  # raises for unknown zone keys

        self.source = source
        self.anchor_date = anchor_date
        self.query_style = query_style
        self.timezone = timezone

        self.current_week = 1
        self.series: dict[str, int] = {}
        self.month_label = ""
        self.is_loading = False
        self.has_loaded = False

        self._generation = 0
        self._subscribers: list[Subscriber] = []

    def snapshot(self) -> WeekSnapshot:
        return WeekSnapshot(
            current_week=self.current_week,
            is_loading=self.is_loading,
            month_label=self.month_label,
            series=dict(self.series),
            has_loaded=self.has_loaded,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a state-change callback and return its unsubscribe hook."""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Week state subscriber failed")

    async def load_week(self, week_index: int) -> None:
        """Select `week_index` and replace the series with freshly fetched data."""

        # Raises ValueError for weeks outside the calendar range.
        week_dates(self.anchor_date, week_index)

        self._generation += 1
        generation = self._generation
        self.current_week = week_index
        self.is_loading = True
        self._notify()

        series: dict[str, int] = {}
        label = ""
        try:
            series, label = await fetch_week(
                self.source,
                self.anchor_date,
                week_index,
                query_style=self.query_style,
                timezone=self.timezone,
            )
        except QueryFailure as exc:
            if generation == self._generation:
                logger.warning("Error fetching data for week %s: %s", week_index, exc)
        except Exception:
            if generation == self._generation:
                logger.exception(
                    "Unexpected error fetching data for week %s", week_index
                )
        finally:
            if generation == self._generation:
                self.is_loading = False

        if generation != self._generation:
            logger.debug("Discarding stale result for week %s", week_index)
            return

        self.series = series
        self.month_label = label
        self.has_loaded = True
        self._notify()

    async def next_week(self) -> None:
        await self.load_week(self.current_week + 1)

    async def previous_week(self) -> None:
        if self.current_week > 1:
            await self.load_week(self.current_week - 1)

    def get_display_series(self) -> list[tuple[str, int]]:
        """Return the current week's seven days with counts, zero-filled."""

        return display_series(self.anchor_date, self.current_week, self.series)
