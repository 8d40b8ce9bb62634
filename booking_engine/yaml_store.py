from __future__ import annotations

import logging
import secrets
import shutil
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, TypeVar

import yaml

from .errors import BookingStorageError
from .models import (
    ACTIVE_STATUSES,
    BookingRecord,
    BookingStatus,
    IntervalRecord,
    OwnerKind,
    OwnerRecord,
    UserRecord,
    UserRole,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")


class BookingYamlRepository:
    """File-backed store for owners, intervals, bookings and users.

    Every read-modify-write runs under one re-entrant lock; callers that need a
    check and a write to be atomic wrap both in :meth:`transaction`.
    """

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.owners_file = self.base_dir / "owners.yaml"
        self.intervals_file = self.base_dir / "intervals.yaml"
        self.bookings_file = self.base_dir / "bookings.yaml"
        self.users_file = self.base_dir / "users.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        self._lock = threading.RLock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.owners_file, self.intervals_file, self.bookings_file, self.users_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    @contextmanager
    def transaction(self) -> Iterator["BookingYamlRepository"]:
        with self._lock:
            yield self

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self.log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise BookingStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path)

        path.write_text("[]\n", encoding="utf-8")
        logger.error("Recovered corrupted YAML file %s: %s", path.name, error)
        if path != self.log_file:
            self.log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml_list(self.log_file, events)

    def get_events(self) -> list[dict[str, Any]]:
        with self._lock:
            return self._read_yaml_list(self.log_file)

    def _load(self, path: Path, factory: Callable[[dict[str, Any]], R]) -> list[R]:
        with self._lock:
            return [factory(row) for row in self._read_yaml_list(path)]

    def _find_one(self, path: Path, key: str, value: int, factory: Callable[[dict[str, Any]], R]) -> R | None:
        with self._lock:
            for row in self._read_yaml_list(path):
                if _as_int(row.get(key)) == value:
                    return factory(row)
        return None

    def _insert(self, path: Path, key: str, build: Callable[[int], R], to_dict: Callable[[R], dict[str, Any]]) -> R:
        with self._lock:
            rows = self._read_yaml_list(path)
            next_id = max((_as_int(row.get(key)) or 0 for row in rows), default=0) + 1
            record = build(next_id)
            rows.append(to_dict(record))
            self._write_yaml_list(path, rows)
            return record

    def _replace(self, path: Path, key: str, value: int, payload: dict[str, Any]) -> None:
        with self._lock:
            rows = self._read_yaml_list(path)
            for index, row in enumerate(rows):
                if _as_int(row.get(key)) == value:
                    rows[index] = payload
                    break
            else:
                rows.append(payload)
            self._write_yaml_list(path, rows)

    def _delete(self, path: Path, key: str, values: Iterable[int]) -> int:
        targets = set(values)
        with self._lock:
            rows = self._read_yaml_list(path)
            remaining = [row for row in rows if _as_int(row.get(key)) not in targets]
            removed = len(rows) - len(remaining)
            if removed:
                self._write_yaml_list(path, remaining)
            return removed

    # owners

    def add_owner(self, kind: OwnerKind, name: str, now: datetime) -> OwnerRecord:
        return self._insert(
            self.owners_file,
            "owner_id",
            lambda owner_id: OwnerRecord(owner_id, kind, name, created_at=now, updated_at=now),
            OwnerRecord.to_dict,
        )

    def save_owner(self, record: OwnerRecord) -> OwnerRecord:
        self._replace(self.owners_file, "owner_id", record.owner_id, record.to_dict())
        return record

    def find_owners(self, kind: OwnerKind | None = None) -> list[OwnerRecord]:
        owners = self._load(self.owners_file, OwnerRecord.from_dict)
        return [owner for owner in owners if kind is None or owner.kind == kind]

    def find_owner_by_id(self, owner_id: int) -> OwnerRecord | None:
        return self._find_one(self.owners_file, "owner_id", owner_id, OwnerRecord.from_dict)

    def owner_exists(self, owner_id: int) -> bool:
        return self.find_owner_by_id(owner_id) is not None

    def delete_owner(self, owner_id: int) -> bool:
        return self._delete(self.owners_file, "owner_id", [owner_id]) > 0

    # intervals

    def add_interval(self, owner_id: int, start: datetime, end: datetime, capacity: int, now: datetime) -> IntervalRecord:
        return self._insert(
            self.intervals_file,
            "interval_id",
            lambda interval_id: IntervalRecord(
                interval_id=interval_id,
                owner_id=owner_id,
                start=start,
                end=end,
                capacity=capacity,
                created_at=now,
                updated_at=now,
            ),
            IntervalRecord.to_dict,
        )

    def save_interval(self, record: IntervalRecord) -> IntervalRecord:
        self._replace(self.intervals_file, "interval_id", record.interval_id, record.to_dict())
        return record

    def find_intervals(self, owner_id: int | None = None) -> list[IntervalRecord]:
        intervals = self._load(self.intervals_file, IntervalRecord.from_dict)
        return [interval for interval in intervals if owner_id is None or interval.owner_id == owner_id]

    def find_interval_by_id(self, interval_id: int) -> IntervalRecord | None:
        return self._find_one(self.intervals_file, "interval_id", interval_id, IntervalRecord.from_dict)

    def interval_exists(self, interval_id: int) -> bool:
        return self.find_interval_by_id(interval_id) is not None

    def delete_interval(self, interval_id: int) -> bool:
        return self._delete(self.intervals_file, "interval_id", [interval_id]) > 0

    def find_overlapping(self, owner_id: int, start: datetime, end: datetime) -> list[IntervalRecord]:
        return [
            interval
            for interval in self.find_intervals(owner_id)
            if interval.start < end and interval.end > start
        ]

    # bookings

    def add_booking(self, user_id: int, interval_id: int, status: BookingStatus, now: datetime) -> BookingRecord:
        return self._insert(
            self.bookings_file,
            "booking_id",
            lambda booking_id: BookingRecord(
                booking_id=booking_id,
                user_id=user_id,
                interval_id=interval_id,
                status=status,
                created_at=now,
                updated_at=now,
            ),
            BookingRecord.to_dict,
        )

    def save_booking(self, record: BookingRecord) -> BookingRecord:
        self._replace(self.bookings_file, "booking_id", record.booking_id, record.to_dict())
        return record

    def find_bookings(self, interval_id: int | None = None, user_id: int | None = None) -> list[BookingRecord]:
        bookings = self._load(self.bookings_file, BookingRecord.from_dict)
        return [
            booking
            for booking in bookings
            if (interval_id is None or booking.interval_id == interval_id)
            and (user_id is None or booking.user_id == user_id)
        ]

    def find_booking_by_id(self, booking_id: int) -> BookingRecord | None:
        return self._find_one(self.bookings_file, "booking_id", booking_id, BookingRecord.from_dict)

    def booking_exists(self, booking_id: int) -> bool:
        return self.find_booking_by_id(booking_id) is not None

    def delete_booking(self, booking_id: int) -> bool:
        return self._delete(self.bookings_file, "booking_id", [booking_id]) > 0

    def delete_bookings_for_interval(self, interval_id: int) -> int:
        ids = [booking.booking_id for booking in self.find_bookings(interval_id=interval_id)]
        return self._delete(self.bookings_file, "booking_id", ids)

    def delete_interval_with_bookings(self, interval_id: int) -> int:
        """Remove an interval and its bookings; bookings are restored if the interval write fails."""
        with self._lock:
            snapshot = self._read_yaml_list(self.bookings_file)
            removed = self.delete_bookings_for_interval(interval_id)
            try:
                self.delete_interval(interval_id)
            except BookingStorageError:
                if removed:
                    self._write_yaml_list(self.bookings_file, snapshot)
                raise
            return removed

    def count_active_by_interval(
        self,
        interval_id: int,
        statuses: Iterable[BookingStatus] = ACTIVE_STATUSES,
    ) -> int:
        return self.count_active_by_intervals([interval_id], statuses).get(interval_id, 0)

    def count_active_by_intervals(
        self,
        interval_ids: Iterable[int],
        statuses: Iterable[BookingStatus] = ACTIVE_STATUSES,
    ) -> dict[int, int]:
        wanted_ids = set(interval_ids)
        wanted_statuses = set(statuses)
        counts: dict[int, int] = {}
        if not wanted_ids:
            return counts

        for booking in self.find_bookings():
            if booking.interval_id in wanted_ids and booking.status in wanted_statuses:
                counts[booking.interval_id] = counts.get(booking.interval_id, 0) + 1
        return counts

    # users

    def add_user(self, email: str, full_name: str, role: UserRole, api_token: str, now: datetime) -> UserRecord:
        return self._insert(
            self.users_file,
            "user_id",
            lambda user_id: UserRecord(
                user_id=user_id,
                email=email,
                full_name=full_name,
                role=role,
                api_token=api_token,
                created_at=now,
                updated_at=now,
            ),
            UserRecord.to_dict,
        )

    def save_user(self, record: UserRecord) -> UserRecord:
        self._replace(self.users_file, "user_id", record.user_id, record.to_dict())
        return record

    def find_users(self) -> list[UserRecord]:
        return self._load(self.users_file, UserRecord.from_dict)

    def find_user_by_id(self, user_id: int) -> UserRecord | None:
        return self._find_one(self.users_file, "user_id", user_id, UserRecord.from_dict)

    def find_user_by_email(self, email: str) -> UserRecord | None:
        normalized = email.strip().lower()
        for user in self.find_users():
            if user.email.lower() == normalized:
                return user
        return None

    def find_user_by_token(self, api_token: str) -> UserRecord | None:
        presented = api_token.encode("utf-8")
        for user in self.find_users():
            if secrets.compare_digest(user.api_token.encode("utf-8"), presented):
                return user
        return None

    def user_exists(self, user_id: int) -> bool:
        return self.find_user_by_id(user_id) is not None

    def delete_user(self, user_id: int) -> bool:
        return self._delete(self.users_file, "user_id", [user_id]) > 0


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
