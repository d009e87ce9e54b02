import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from incident_desk.core.coerce import utcnow
from incident_desk.core.errors import ValidationGap
from incident_desk.schemas.ticket import (
    Analytics,
    CategoryCount,
    DayActivity,
    PriorityCount,
    SlaStats,
    StatusCount,
    TicketStats,
)
from incident_desk.store.record_store import RecordStore

logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})$")
WEEK_PATTERN = re.compile(r"^(\d{4})-W(\d{1,2})$")

STATUS_PLACEHOLDER = "Unknown"
CATEGORY_PLACEHOLDER = "Uncategorized"
PRIORITY_PLACEHOLDER = "N/A"
NO_TOP_GROUP = "N/A"


@dataclass(frozen=True)
class StatsWindow:
    """Half-open [start, end) range on ticket timestamps; None means unbounded."""
    start: Optional[datetime]
    end: Optional[datetime]
    year: int

    @property
    def bounds(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        return self.start, self.end


def _year_start(year: int) -> datetime:
    if not 1 <= year <= 9998:
        raise ValidationGap(f"Year out of range: {year}")
    return datetime(year, 1, 1)


def resolve_window(
    month: Optional[str] = None,
    week: Optional[str] = None,
    year: Optional[str] = None,
    today: Optional[date] = None,
) -> StatsWindow:
    """Month wins over week, week over year; nothing means all time."""
    today = today or utcnow().date()

    if month:
        match = MONTH_PATTERN.match(month.strip())
        if not match or not 1 <= int(match.group(2)) <= 12:
            raise ValidationGap(f"Invalid month filter {month!r}, expected YYYY-MM")
        yr, mo = int(match.group(1)), int(match.group(2))
        start = _year_start(yr).replace(month=mo)
        end = datetime(yr + 1, 1, 1) if mo == 12 else datetime(yr, mo + 1, 1)
        return StatsWindow(start, end, yr)

    if week:
        match = WEEK_PATTERN.match(week.strip())
        if not match:
            raise ValidationGap(f"Invalid week filter {week!r}, expected YYYY-Www")
        yr, wk = int(match.group(1)), int(match.group(2))
        _year_start(yr)
        try:
            monday = date.fromisocalendar(yr, wk, 1)
        except ValueError as exc:
            raise ValidationGap(f"Invalid week filter {week!r}: {exc}") from exc
        start = datetime.combine(monday, time.min)
        return StatsWindow(start, start + timedelta(days=7), yr)

    if year:
        try:
            yr = int(str(year).strip())
        except ValueError as exc:
            raise ValidationGap(f"Invalid year filter {year!r}") from exc
        return StatsWindow(_year_start(yr), datetime(yr + 1, 1, 1), yr)

    return StatsWindow(None, None, today.year)


def label_groups(rows: Iterable[Tuple[Optional[str], int]], placeholder: str) -> List[Tuple[str, int]]:
    """Name empty groups and fold together groups that end up with the same label."""
    merged: Dict[str, int] = {}
    for value, count in rows:
        label = value or placeholder
        merged[label] = merged.get(label, 0) + count
    return list(merged.items())


def top_group(groups: List[Tuple[str, int]]) -> str:
    best, best_count = NO_TOP_GROUP, 0
    for label, count in groups:
        if count > best_count:
            best, best_count = label, count
    return best


def merge_over_time(opened: Dict[str, int], closed: Dict[str, int]) -> List[DayActivity]:
    # YYYY-MM-DD keys sort chronologically as plain strings
    return [
        DayActivity(date=day, opened=opened.get(day, 0), closed=closed.get(day, 0))
        for day in sorted(set(opened) | set(closed))
    ]


def compliance_rate(on_time: int, total: int) -> float:
    return round(on_time / max(total, 1) * 100, 1)


class StatisticsAggregator:
    """
    Dashboard statistics. Each sub-query is independent and runs on its own
    worker and session; the result is built only once all of them finish.
    """

    def __init__(self, store: RecordStore, max_workers: int = 8):
        self.store = store
        self.max_workers = max_workers

    def compute(self, window: StatsWindow) -> TicketStats:
        bounds = window.bounds
        queries = {
            "status": (self.store.group_counts, "status", bounds),
            "category": (self.store.group_counts, "category", bounds),
            "priority": (self.store.group_counts, "priority", bounds),
            "opened": (self.store.opened_per_day, bounds),
            "closed": (self.store.closed_per_day, bounds),
            "breached": (self.store.count_sla, True, bounds),
            "on_time": (self.store.count_sla, False, bounds),
            "total": (self.store.count_tickets, bounds),
        }
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {name: pool.submit(call, *args) for name, (call, *args) in queries.items()}
            results = {name: future.result() for name, future in futures.items()}

        by_status = label_groups(results["status"], STATUS_PLACEHOLDER)
        by_category = label_groups(results["category"], CATEGORY_PLACEHOLDER)
        by_priority = label_groups(results["priority"], PRIORITY_PLACEHOLDER)
        total = results["total"]

        logger.debug("Computed stats for %s..%s over %d tickets", window.start, window.end, total)
        return TicketStats(
            total_tickets=total,
            by_status=[StatusCount(status=label, count=count) for label, count in by_status],
            by_category=[CategoryCount(category=label, count=count) for label, count in by_category],
            by_priority=[PriorityCount(priority=label, count=count) for label, count in by_priority],
            tickets_over_time=merge_over_time(results["opened"], results["closed"]),
            sla_stats=SlaStats(
                breached=results["breached"],
                on_time=results["on_time"],
                compliance_rate=compliance_rate(results["on_time"], total),
            ),
            analytics=Analytics(
                top_category=top_group(by_category),
                top_priority=top_group(by_priority),
                year_analyzed=window.year,
            ),
        )
