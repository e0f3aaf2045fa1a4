import calendar
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from mentalboost.models import SessionRecord


class DateRange(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


def _months_back(now: datetime, months: int) -> datetime:
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # clamp the day, e.g. March 31st one month back is February 28th/29th
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def cutoff(date_range: DateRange, now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or datetime.now()
    if date_range is DateRange.WEEK:
        return now - timedelta(days=7)
    if date_range is DateRange.MONTH:
        return _months_back(now, 1)
    if date_range is DateRange.YEAR:
        return _months_back(now, 12)
    return None


def filter_records(
    records: Iterable[SessionRecord],
    emotions: Sequence[str] = (),
    date_range: DateRange = DateRange.ALL,
    now: Optional[datetime] = None,
) -> List[SessionRecord]:
    """
    Keep the records that show any of the selected emotions and started on
    or after the cutoff of the selected range. No emotions selected means
    every emotion matches. Input order is preserved.
    """
    selected = set(emotions)
    since = cutoff(DateRange(date_range), now)

    filtered = []
    for record in records:
        if selected and selected.isdisjoint(record.emotions):
            continue
        if since is not None and record.start_time < since:
            continue
        filtered.append(record)
    return filtered


def all_emotions(records: Iterable[SessionRecord]) -> List[str]:
    seen = []
    for record in records:
        for emotion in record.emotions:
            if emotion not in seen:
                seen.append(emotion)
    return seen
