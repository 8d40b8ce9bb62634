from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from .errors import InvalidRangeError, NotInFutureError
from .models import IntervalRecord


class OverlapSource(Protocol):
    def find_overlapping(self, owner_id: int, start: datetime, end: datetime) -> list[IntervalRecord]: ...


def normalize_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def validate_range(start: datetime, end: datetime, now: datetime) -> tuple[datetime, datetime]:
    """Return the minute-truncated range or raise when it cannot be scheduled.

    ``now`` itself does not count as the future.
    """
    start = normalize_to_minute(start)
    end = normalize_to_minute(end)
    if end <= start:
        raise InvalidRangeError("end must be after start")
    if start <= now:
        raise NotInFutureError("start must be in the future")
    return start, end


def has_time_overlap(new_start: datetime, new_end: datetime, exist_start: datetime, exist_end: datetime) -> bool:
    """Return True when two time intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and new_end > exist_start


def conflicting_ids(
    start: datetime,
    end: datetime,
    existing: Iterable[IntervalRecord],
    exclude_interval_id: int | None = None,
) -> set[int]:
    return {
        interval.interval_id
        for interval in existing
        if interval.interval_id != exclude_interval_id and has_time_overlap(start, end, interval.start, interval.end)
    }


def find_conflicts(
    store: OverlapSource,
    owner_id: int,
    start: datetime,
    end: datetime,
    exclude_interval_id: int | None = None,
) -> set[int]:
    """Return ids of the owner's intervals overlapping ``[start, end)``.

    Only reports; rejecting the candidate is up to the caller.
    """
    candidates = store.find_overlapping(owner_id, start, end)
    return conflicting_ids(start, end, candidates, exclude_interval_id)
