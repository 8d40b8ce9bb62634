from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .authorization import AuthorizationGuard
from .config import BookingSettings
from .locks import KeyedLockRegistry
from .reservations import ReservationService
from .scheduling import SchedulingService
from .users import TokenIdentityProvider, UserService
from .yaml_store import BookingYamlRepository


@dataclass(frozen=True)
class BookingServices:
    settings: BookingSettings
    store: BookingYamlRepository
    guard: AuthorizationGuard
    scheduling: SchedulingService
    reservations: ReservationService
    users: UserService
    identity: TokenIdentityProvider


def build_services(
    settings: BookingSettings | None = None,
    now_provider: Callable[[], datetime] | None = None,
) -> BookingServices:
    """Wire the services over one store and one lock registry.

    Scheduling and reservations must share the registry: interval deletion and
    booking creation serialize on the same interval lock.
    """
    settings = settings or BookingSettings()
    store = BookingYamlRepository(settings.data_dir)
    guard = AuthorizationGuard(settings.admin_secret)
    locks = KeyedLockRegistry()
    return BookingServices(
        settings=settings,
        store=store,
        guard=guard,
        scheduling=SchedulingService(
            store,
            locks,
            now_provider,
            default_capacity=settings.default_capacity,
            max_page_size=settings.max_page_size,
        ),
        reservations=ReservationService(store, guard, locks, now_provider),
        users=UserService(store, guard, now_provider, locks),
        identity=TokenIdentityProvider(store),
    )
