from __future__ import annotations

from typing import Iterable, Protocol

from .models import ACTIVE_STATUSES, BookingStatus


class ActiveCountSource(Protocol):
    def count_active_by_interval(self, interval_id: int, statuses: Iterable[BookingStatus]) -> int: ...

    def count_active_by_intervals(self, interval_ids: Iterable[int], statuses: Iterable[BookingStatus]) -> dict[int, int]: ...


class CapacityAccountant:
    """Tallies PENDING and CONFIRMED bookings against interval capacity."""

    def __init__(self, store: ActiveCountSource) -> None:
        self.store = store

    def active_count(self, interval_id: int) -> int:
        return int(self.store.count_active_by_interval(interval_id, ACTIVE_STATUSES))

    def active_counts(self, interval_ids: Iterable[int]) -> dict[int, int]:
        ids = [interval_id for interval_id in interval_ids if interval_id is not None]
        if not ids:
            return {}
        counts = self.store.count_active_by_intervals(ids, ACTIVE_STATUSES)
        return {interval_id: int(counts.get(interval_id, 0)) for interval_id in ids}

    def can_admit(self, interval_id: int, capacity: int) -> bool:
        return self.active_count(interval_id) < capacity
