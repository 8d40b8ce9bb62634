from __future__ import annotations

import logging
import secrets
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from .authorization import AuthorizationGuard
from .errors import ConflictError, InvalidArgumentError, MissingFieldError, NotFoundError, UnauthenticatedError
from .locks import KeyedLockRegistry
from .models import Actor, Page, UserRecord, UserRole
from .yaml_store import BookingYamlRepository

BEARER_PREFIX = "bearer "


def user_lock_key(user_id: int) -> tuple[str, int]:
    return ("user", user_id)


def _new_token() -> str:
    return secrets.token_urlsafe(24)


def _normalize_email(email: str | None) -> str:
    if email is None or not email.strip():
        raise MissingFieldError("email is required")
    normalized = email.strip().lower()
    if "@" not in normalized:
        raise InvalidArgumentError(f"Invalid email: {email}")
    return normalized


class UserService:
    def __init__(
        self,
        store: BookingYamlRepository,
        guard: AuthorizationGuard,
        now_provider: Callable[[], datetime] | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self.store = store
        self.guard = guard
        self.locks = locks or KeyedLockRegistry()
        self.clock: Callable[[], datetime] = now_provider or datetime.now
        self.logger = logging.getLogger(self.__class__.__name__)

    def register(
        self,
        email: str | None,
        full_name: str | None = None,
        role: Any = None,
        admin_secret: str | None = None,
    ) -> UserRecord:
        normalized_email = _normalize_email(email)
        requested_role = UserRole.parse(role) if role is not None else UserRole.USER
        self.guard.require_role_elevation(requested_role, admin_secret)

        now = self.clock()
        with self.store.transaction():
            if self.store.find_user_by_email(normalized_email) is not None:
                raise ConflictError("Email is already registered")
            user = self.store.add_user(normalized_email, (full_name or "").strip(), requested_role, _new_token(), now)

        self.logger.info("User %s registered with role %s", user.user_id, user.role.value)
        self.store.log_event("USER_CREATED", user.to_dict(include_token=False), now)
        return user

    def update(
        self,
        user_id: int,
        email: str | None = None,
        full_name: str | None = None,
        role: Any = None,
        admin_secret: str | None = None,
    ) -> UserRecord:
        now = self.clock()
        with self.store.transaction():
            existing = self.get(user_id)
            new_role = UserRole.parse(role) if role is not None else existing.role
            if new_role == UserRole.ADMIN and existing.role != UserRole.ADMIN:
                self.guard.require_role_elevation(new_role, admin_secret)

            new_email = _normalize_email(email) if email is not None else existing.email
            if new_email != existing.email:
                holder = self.store.find_user_by_email(new_email)
                if holder is not None and holder.user_id != user_id:
                    raise ConflictError("Email is already registered")

            updated = self.store.save_user(
                replace(
                    existing,
                    email=new_email,
                    full_name=full_name.strip() if full_name is not None else existing.full_name,
                    role=new_role,
                    updated_at=now,
                )
            )

        self.store.log_event("USER_UPDATED", updated.to_dict(include_token=False), now)
        return updated

    def get(self, user_id: int) -> UserRecord:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def list_users(self, page: int = 0, size: int = 20) -> Page[UserRecord]:
        users = sorted(self.store.find_users(), key=lambda user: user.user_id)
        offset = page * size
        return Page(users[offset : offset + size], page=page, size=size, total_elements=len(users))

    def delete(self, user_id: int) -> None:
        # booking creation holds the same key while it checks the user and inserts
        with self.locks.hold(user_lock_key(user_id)), self.store.transaction():
            self.get(user_id)
            if any(booking.is_active for booking in self.store.find_bookings(user_id=user_id)):
                raise ConflictError("User still has active bookings")
            self.store.delete_user(user_id)
        self.store.log_event("USER_DELETED", {"user_id": user_id}, self.clock())


class TokenIdentityProvider:
    """Resolves ``Bearer <api_token>`` credentials to an :class:`Actor`."""

    def __init__(self, store: BookingYamlRepository) -> None:
        self.store = store

    def resolve_actor(self, credential: str | None) -> Actor:
        if credential is None or not credential.strip():
            raise UnauthenticatedError("Authentication required")

        token = credential.strip()
        if token.lower().startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX) :].strip()

        user = self.store.find_user_by_token(token) if token else None
        if user is None:
            raise UnauthenticatedError("Invalid credentials")
        return user.to_actor()
