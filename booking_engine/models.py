from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from .errors import InvalidArgumentError

DEFAULT_CAPACITY = 5

T = TypeVar("T")


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: Any) -> "BookingStatus":
        """Exact, case-sensitive match on the status literal."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"Invalid status: {value}") from None


ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


class UserRole(str, Enum):
    USER = "USER"
    TRAINER = "TRAINER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: Any) -> "UserRole":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"Invalid role: {value}") from None


class OwnerKind(str, Enum):
    RESOURCE = "RESOURCE"
    COURSE = "COURSE"


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class OwnerRecord:
    owner_id: int
    kind: OwnerKind
    name: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "kind": self.kind.value,
            "name": self.name,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "OwnerRecord":
        return OwnerRecord(
            owner_id=int(data["owner_id"]),
            kind=OwnerKind(str(data["kind"])),
            name=str(data["name"]),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


@dataclass(frozen=True)
class IntervalRecord:
    interval_id: int
    owner_id: int
    start: datetime
    end: datetime
    capacity: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "interval_id": self.interval_id,
            "owner_id": self.owner_id,
            "start": self.start.isoformat(timespec="minutes"),
            "end": self.end.isoformat(timespec="minutes"),
            "capacity": self.capacity,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "IntervalRecord":
        return IntervalRecord(
            interval_id=int(data["interval_id"]),
            owner_id=int(data["owner_id"]),
            start=datetime.fromisoformat(str(data["start"])),
            end=datetime.fromisoformat(str(data["end"])),
            capacity=int(data.get("capacity", DEFAULT_CAPACITY)),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


@dataclass(frozen=True)
class BookingRecord:
    booking_id: int
    user_id: int
    interval_id: int
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "user_id": self.user_id,
            "interval_id": self.interval_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingRecord":
        return BookingRecord(
            booking_id=int(data["booking_id"]),
            user_id=int(data["user_id"]),
            interval_id=int(data["interval_id"]),
            status=BookingStatus(str(data["status"])),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


@dataclass(frozen=True)
class UserRecord:
    user_id: int
    email: str
    full_name: str
    role: UserRole
    api_token: str
    created_at: datetime
    updated_at: datetime

    def to_actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role)

    def to_dict(self, include_token: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user_id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }
        if include_token:
            payload["api_token"] = self.api_token
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "UserRecord":
        return UserRecord(
            user_id=int(data["user_id"]),
            email=str(data["email"]),
            full_name=str(data.get("full_name") or ""),
            role=UserRole(str(data["role"])),
            api_token=str(data["api_token"]),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


@dataclass(frozen=True)
class IntervalWithCount:
    interval: IntervalRecord
    active_count: int

    def to_dict(self) -> dict[str, Any]:
        payload = self.interval.to_dict()
        payload["current_bookings"] = self.active_count
        return payload


@dataclass(frozen=True)
class Page(Generic[T]):
    content: list[T]
    page: int
    size: int
    total_elements: int
    total_pages: int = field(init=False)
    last: bool = field(init=False)

    def __post_init__(self) -> None:
        total_pages = -(-self.total_elements // self.size) if self.size > 0 else 0
        object.__setattr__(self, "total_pages", total_pages)
        object.__setattr__(self, "last", self.page + 1 >= total_pages)
