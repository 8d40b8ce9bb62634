from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from .authorization import AuthorizationGuard
from .capacity import CapacityAccountant
from .errors import (
    CapacityExceededError,
    ForbiddenError,
    InvalidStateError,
    MissingFieldError,
    NotFoundError,
    UnauthenticatedError,
)
from .locks import KeyedLockRegistry
from .models import Actor, BookingRecord, BookingStatus, IntervalRecord, Page, UserRole
from .users import user_lock_key
from .yaml_store import BookingYamlRepository

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}

CONFIRMING_ROLES = frozenset({UserRole.TRAINER, UserRole.ADMIN})


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, frozenset())


def assert_transition(current: BookingStatus, target: BookingStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStateError(f"Invalid booking transition: {current.value} -> {target.value}")


def interval_lock_key(interval_id: int) -> tuple[str, int]:
    return ("interval", interval_id)


class ReservationService:
    """Booking lifecycle: create, confirm, cancel, administrative override, delete.

    Cancellation checks the booking window before ownership, so a caller who is
    both late and not the owner sees ``InvalidStateError``.
    """

    def __init__(
        self,
        store: BookingYamlRepository,
        guard: AuthorizationGuard,
        locks: KeyedLockRegistry | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.guard = guard
        self.capacity = CapacityAccountant(store)
        self.locks = locks or KeyedLockRegistry()
        self.clock: Callable[[], datetime] = now_provider or datetime.now
        self.logger = logging.getLogger(self.__class__.__name__)

    def get(self, booking_id: int) -> BookingRecord:
        booking = self.store.find_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def list_bookings(self, page: int = 0, size: int = 20) -> Page[BookingRecord]:
        bookings = sorted(self.store.find_bookings(), key=lambda booking: booking.booking_id)
        offset = page * size
        return Page(bookings[offset : offset + size], page=page, size=size, total_elements=len(bookings))

    def create(self, interval_id: int | None, actor: Actor | None, user_id: int | None = None) -> BookingRecord:
        if interval_id is None:
            raise MissingFieldError("interval_id is required")
        if actor is None:
            raise UnauthenticatedError("Current user is required")

        target_user_id = user_id if user_id is not None else actor.user_id
        self.guard.require_owner_or_elevated(target_user_id, actor, "create booking")

        with self.locks.hold(user_lock_key(target_user_id), interval_lock_key(interval_id)):
            if not self.store.user_exists(target_user_id):
                raise NotFoundError("User not found")

            interval = self._get_interval(interval_id)
            now = self.clock()
            if interval.start <= now:
                raise InvalidStateError("Slot must be in the future to create booking")
            if not self.capacity.can_admit(interval.interval_id, interval.capacity):
                raise CapacityExceededError(f"Slot {interval.interval_id} is full (capacity {interval.capacity})")

            booking = self.store.add_booking(target_user_id, interval.interval_id, BookingStatus.PENDING, now)

        self._record("BOOKING_CREATED", booking, now, actor)
        return booking

    def confirm(self, booking_id: int, actor: Actor | None) -> BookingRecord:
        if actor is None:
            raise UnauthenticatedError("Current user is required")
        if actor.role not in CONFIRMING_ROLES:
            raise ForbiddenError("Only trainer or admin may confirm booking")

        booking = self.get(booking_id)
        with self.locks.hold(interval_lock_key(booking.interval_id)):
            booking = self.get(booking_id)
            interval = self._get_interval(booking.interval_id)
            now = self.clock()
            if interval.start <= now:
                raise InvalidStateError("Slot must be in the future to confirm booking")
            assert_transition(booking.status, BookingStatus.CONFIRMED)
            confirmed = self.store.save_booking(replace(booking, status=BookingStatus.CONFIRMED, updated_at=now))

        self._record("BOOKING_CONFIRMED", confirmed, now, actor)
        return confirmed

    def cancel(self, booking_id: int, actor: Actor | None) -> BookingRecord:
        if actor is None:
            raise UnauthenticatedError("Current user is required")

        booking = self.get(booking_id)
        with self.locks.hold(interval_lock_key(booking.interval_id)):
            booking = self.get(booking_id)
            interval = self._get_interval(booking.interval_id)
            now = self.clock()
            if interval.start <= now:
                raise InvalidStateError("Slot must be in the future to cancel booking")

            self.guard.require_owner_or_elevated(booking.user_id, actor, "cancel booking")

            if booking.status == BookingStatus.CANCELLED:
                raise InvalidStateError("Booking is already cancelled")
            assert_transition(booking.status, BookingStatus.CANCELLED)
            cancelled = self.store.save_booking(replace(booking, status=BookingStatus.CANCELLED, updated_at=now))

        self._record("BOOKING_CANCELLED", cancelled, now, actor)
        return cancelled

    def update_status(self, booking_id: int, status: Any) -> BookingRecord:
        """Set any status directly. Operator tooling only: no ownership, role or time rules."""
        booking = self.get(booking_id)
        new_status = BookingStatus.parse(status)

        now = self.clock()
        with self.locks.hold(interval_lock_key(booking.interval_id)):
            booking = self.get(booking_id)
            updated = self.store.save_booking(replace(booking, status=new_status, updated_at=now))

        self.logger.warning("Booking %s status overridden %s -> %s", booking_id, booking.status.value, new_status.value)
        self._record("BOOKING_STATUS_OVERRIDDEN", updated, now, None)
        return updated

    def delete(self, booking_id: int) -> None:
        booking = self.get(booking_id)
        with self.locks.hold(interval_lock_key(booking.interval_id)):
            if not self.store.delete_booking(booking_id):
                raise NotFoundError("Booking not found")
        self.store.log_event("BOOKING_DELETED", {"booking_id": booking_id}, self.clock())

    def _get_interval(self, interval_id: int) -> IntervalRecord:
        interval = self.store.find_interval_by_id(interval_id)
        if interval is None:
            raise NotFoundError("Slot not found")
        return interval

    def _record(self, event_type: str, booking: BookingRecord, now: datetime, actor: Actor | None) -> None:
        self.logger.info("%s booking=%s interval=%s user=%s", event_type, booking.booking_id, booking.interval_id, booking.user_id)
        self.store.log_event(
            event_type,
            {
                "booking_id": booking.booking_id,
                "interval_id": booking.interval_id,
                "user_id": booking.user_id,
                "status": booking.status.value,
                "actor_id": actor.user_id if actor is not None else None,
            },
            now,
        )
