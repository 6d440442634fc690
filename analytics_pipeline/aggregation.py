"""Read-side aggregation over the partitioned event store.

Every call is a full range scan from the window start followed by an
in-memory fold. Nothing is cached or persisted.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import (
    BrowserCount,
    CityCount,
    DashboardStats,
    Event,
    HourCount,
    PageCount,
)
from .store import PARTITION_FORMAT

logger = logging.getLogger(__name__)

TOP_N = 5
UNKNOWN = "unknown"
EARLIEST_PARTITION = "00010101"


def start_partition(window_days: int, today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    if window_days >= (today - date.min).days:
        return EARLIEST_PARTITION
    return (today - timedelta(days=window_days)).strftime(PARTITION_FORMAT)


def count_by(events: Iterable[Event], key: Callable[[Event], Optional[str]]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for event in events:
        label = key(event)
        if label is None:
            continue
        counts[label] = counts.get(label, 0) + 1
    return counts


def top_n(counts: Dict[str, int], limit: int = TOP_N) -> List[Tuple[str, int]]:
    # sorted() is stable, so equal counts keep first-seen order
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]


def hour_label(event: Event) -> Optional[str]:
    when = event.event_time
    if when is None:
        return None
    return f"{when.astimezone(timezone.utc).hour:02d}:00"


def calculate_stats(events: List[Event]) -> DashboardStats:
    pages = count_by(events, lambda e: e.url if e.url is not None else UNKNOWN)
    browsers = count_by(events, lambda e: e.browser if e.browser is not None else UNKNOWN)
    cities = count_by(events, lambda e: e.city if e.city is not None else UNKNOWN)
    hours = count_by(events, hour_label)

    return DashboardStats(
        total_events=len(events),
        unique_users=len({e.user_id for e in events}),
        unique_sessions=len({e.session_id for e in events}),
        top_pages=[PageCount(url=k, count=v) for k, v in top_n(pages)],
        top_browsers=[BrowserCount(browser=k, count=v) for k, v in top_n(browsers)],
        top_cities=[CityCount(city=k, count=v) for k, v in top_n(cities)],
        events_by_hour=[HourCount(hour=k, count=v) for k, v in sorted(hours.items())],
    )


class AggregationEngine:
    def __init__(self, store):
        self.store = store

    async def compute_stats(self, window_days: int = 7, today: Optional[date] = None) -> DashboardStats:
        start = start_partition(window_days, today)
        events = await self.store.scan_from(start)
        logger.info(f"Aggregating {len(events)} events from partition {start}")
        return calculate_stats(events)

    async def recent_events(self, limit: int = 100, today: Optional[date] = None) -> List[Event]:
        return await self.store.scan_from(start_partition(0, today), limit=limit)
