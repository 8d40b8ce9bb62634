from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

from .booking import find_conflicts, validate_range
from .capacity import CapacityAccountant
from .errors import (
    CapacityExceededError,
    ConflictError,
    InvalidArgumentError,
    MissingFieldError,
    NotFoundError,
)
from .locks import KeyedLockRegistry
from .models import (
    DEFAULT_CAPACITY,
    BookingStatus,
    IntervalRecord,
    IntervalWithCount,
    OwnerKind,
    OwnerRecord,
    Page,
)
from .reservations import interval_lock_key
from .yaml_store import BookingYamlRepository

SORTABLE_FIELDS: dict[str, Callable[[IntervalRecord], object]] = {
    "id": lambda interval: interval.interval_id,
    "owner_id": lambda interval: interval.owner_id,
    "start": lambda interval: interval.start,
    "end": lambda interval: interval.end,
    "capacity": lambda interval: interval.capacity,
}

_OWNER_LABELS = {OwnerKind.RESOURCE: "Resource", OwnerKind.COURSE: "Course"}


def owner_lock_key(owner_id: int) -> tuple[str, int]:
    return ("owner", owner_id)


def parse_sort(sort: str | None) -> tuple[Callable[[IntervalRecord], object], bool]:
    """Parse ``"field,direction"``; direction defaults to ascending."""
    if not sort:
        return SORTABLE_FIELDS["start"], False

    field_name, _, direction = sort.partition(",")
    field_name = field_name.strip().lower()
    direction = direction.strip().lower() or "asc"
    if field_name == "interval_id":
        field_name = "id"
    if field_name not in SORTABLE_FIELDS:
        raise InvalidArgumentError(f"Unsupported sort field: {field_name}")
    if direction not in {"asc", "desc"}:
        raise InvalidArgumentError(f"Unsupported sort direction: {direction}")
    return SORTABLE_FIELDS[field_name], direction == "desc"


class SchedulingService:
    """Owns resources/courses and the intervals scheduled on them.

    Interval writes for one owner are serialized, so the overlap check and
    the insert it guards can never interleave with another writer.
    """

    def __init__(
        self,
        store: BookingYamlRepository,
        locks: KeyedLockRegistry | None = None,
        now_provider: Callable[[], datetime] | None = None,
        default_capacity: int = DEFAULT_CAPACITY,
        max_page_size: int = 100,
    ) -> None:
        self.store = store
        self.locks = locks or KeyedLockRegistry()
        self.clock: Callable[[], datetime] = now_provider or datetime.now
        self.capacity = CapacityAccountant(store)
        self.default_capacity = default_capacity
        self.max_page_size = max_page_size
        self.logger = logging.getLogger(self.__class__.__name__)

    # owners

    def create_owner(self, kind: OwnerKind, name: str | None) -> OwnerRecord:
        normalized = _normalize_name(name)
        owner = self.store.add_owner(kind, normalized, self.clock())
        self.store.log_event("OWNER_CREATED", owner.to_dict(), owner.created_at)
        return owner

    def get_owner(self, owner_id: int, kind: OwnerKind | None = None) -> OwnerRecord:
        owner = self.store.find_owner_by_id(owner_id)
        if owner is None or (kind is not None and owner.kind != kind):
            label = _OWNER_LABELS[kind] if kind is not None else "Owner"
            raise NotFoundError(f"{label} not found")
        return owner

    def list_owners(self, kind: OwnerKind | None = None) -> list[OwnerRecord]:
        return sorted(self.store.find_owners(kind), key=lambda owner: owner.owner_id)

    def rename_owner(self, owner_id: int, name: str | None, kind: OwnerKind | None = None) -> OwnerRecord:
        normalized = _normalize_name(name)
        with self.locks.hold(owner_lock_key(owner_id)):
            owner = self.get_owner(owner_id, kind)
            renamed = self.store.save_owner(replace(owner, name=normalized, updated_at=self.clock()))
        self.store.log_event("OWNER_RENAMED", renamed.to_dict(), renamed.updated_at)
        return renamed

    def delete_owner(self, owner_id: int, kind: OwnerKind | None = None) -> None:
        with self.locks.hold(owner_lock_key(owner_id)):
            owner = self.get_owner(owner_id, kind)
            if self.store.find_intervals(owner_id):
                raise ConflictError(f"{_OWNER_LABELS[owner.kind]} still has scheduled intervals")
            self.store.delete_owner(owner_id)
        self.store.log_event("OWNER_DELETED", {"owner_id": owner_id}, self.clock())

    # intervals

    def get_interval(self, interval_id: int) -> IntervalWithCount:
        interval = self._require_interval(interval_id)
        return IntervalWithCount(interval, self.capacity.active_count(interval_id))

    def list_intervals(
        self,
        page: int = 0,
        size: int = 20,
        sort: str | None = None,
        owner_id: int | None = None,
    ) -> Page[IntervalWithCount]:
        if page < 0:
            raise InvalidArgumentError("page must not be negative")
        if size <= 0 or size > self.max_page_size:
            raise InvalidArgumentError(f"size must be between 1 and {self.max_page_size}")
        key, descending = parse_sort(sort)

        intervals = sorted(self.store.find_intervals(owner_id), key=key, reverse=descending)
        offset = page * size
        content = intervals[offset : offset + size]
        counts = self.capacity.active_counts(interval.interval_id for interval in content)
        return Page(
            [IntervalWithCount(interval, counts.get(interval.interval_id, 0)) for interval in content],
            page=page,
            size=size,
            total_elements=len(intervals),
        )

    def create_interval(
        self,
        owner_id: int | None,
        start: datetime | None,
        end: datetime | None,
        capacity: int | None = None,
    ) -> IntervalRecord:
        if owner_id is None:
            raise MissingFieldError("owner_id is required")
        if start is None or end is None:
            raise MissingFieldError("start and end are required")

        with self.locks.hold(owner_lock_key(owner_id)):
            if not self.store.owner_exists(owner_id):
                raise NotFoundError("Resource not found")

            now = self.clock()
            start, end = validate_range(start, end, now)
            self._reject_conflicts(owner_id, start, end, None)
            resolved_capacity = self._resolve_capacity(capacity)

            interval = self.store.add_interval(owner_id, start, end, resolved_capacity, now)

        self.logger.info("Interval %s created for owner %s", interval.interval_id, owner_id)
        self.store.log_event("INTERVAL_CREATED", interval.to_dict(), now)
        return interval

    def update_interval(
        self,
        interval_id: int,
        owner_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        capacity: int | None = None,
    ) -> IntervalRecord:
        while True:
            existing = self._require_interval(interval_id)
            target_owner = owner_id if owner_id is not None else existing.owner_id
            with self.locks.hold(
                owner_lock_key(existing.owner_id),
                owner_lock_key(target_owner),
                interval_lock_key(interval_id),
            ):
                current = self._require_interval(interval_id)
                if current.owner_id != existing.owner_id:
                    # moved by a concurrent update; lock the new owner instead
                    continue
                return self._apply_update(current, target_owner, start, end, capacity)

    def _apply_update(
        self,
        current: IntervalRecord,
        target_owner: int,
        start: datetime | None,
        end: datetime | None,
        capacity: int | None,
    ) -> IntervalRecord:
        if target_owner != current.owner_id and not self.store.owner_exists(target_owner):
            raise NotFoundError("Resource not found")

        now = self.clock()
        new_start, new_end = validate_range(
            start if start is not None else current.start,
            end if end is not None else current.end,
            now,
        )
        self._reject_conflicts(target_owner, new_start, new_end, current.interval_id)
        new_capacity = self._resolve_capacity(capacity if capacity is not None else current.capacity)

        active = self.capacity.active_count(current.interval_id)
        if new_capacity < active:
            raise CapacityExceededError(f"Capacity {new_capacity} is below {active} active bookings")

        updated = self.store.save_interval(
            replace(
                current,
                owner_id=target_owner,
                start=new_start,
                end=new_end,
                capacity=new_capacity,
                updated_at=now,
            )
        )
        self.store.log_event("INTERVAL_UPDATED", updated.to_dict(), now)
        return updated

    def delete_interval(self, interval_id: int, cascade: bool = False) -> None:
        """Remove an interval together with its bookings.

        Active bookings block deletion unless ``cascade`` cancels them first.
        """
        with self.locks.hold(interval_lock_key(interval_id)), self.store.transaction():
            self._require_interval(interval_id)
            now = self.clock()
            active = [booking for booking in self.store.find_bookings(interval_id=interval_id) if booking.is_active]
            if active and not cascade:
                raise ConflictError(f"Slot has {len(active)} active bookings")

            for booking in active:
                cancelled = self.store.save_booking(replace(booking, status=BookingStatus.CANCELLED, updated_at=now))
                self.store.log_event(
                    "BOOKING_CANCELLED",
                    {"booking_id": cancelled.booking_id, "interval_id": interval_id, "reason": "interval deleted"},
                    now,
                )

            removed = self.store.delete_interval_with_bookings(interval_id)

        self.logger.info("Interval %s deleted with %s bookings", interval_id, removed)
        self.store.log_event("INTERVAL_DELETED", {"interval_id": interval_id, "bookings_removed": removed}, now)

    def _require_interval(self, interval_id: int) -> IntervalRecord:
        interval = self.store.find_interval_by_id(interval_id)
        if interval is None:
            raise NotFoundError("Slot not found")
        return interval

    def _reject_conflicts(self, owner_id: int, start: datetime, end: datetime, exclude_interval_id: int | None) -> None:
        conflicts = find_conflicts(self.store, owner_id, start, end, exclude_interval_id)
        if conflicts:
            raise ConflictError(f"Slot overlaps with existing slot for this resource: {sorted(conflicts)}")

    def _resolve_capacity(self, capacity: int | None) -> int:
        if capacity is None:
            return self.default_capacity
        if isinstance(capacity, bool) or not isinstance(capacity, int):
            raise InvalidArgumentError("capacity must be an integer")
        if capacity <= 0:
            raise InvalidArgumentError("Session capacity must be greater than 0")
        return capacity


def _normalize_name(name: str | None) -> str:
    if name is None:
        raise MissingFieldError("name is required")

    normalized = name.strip()
    if not normalized:
        raise MissingFieldError("name is required")
    return normalized
