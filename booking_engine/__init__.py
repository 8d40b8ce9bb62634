from .authorization import AuthorizationGuard
from .booking import find_conflicts, has_time_overlap, normalize_to_minute, validate_range
from .capacity import CapacityAccountant
from .config import BookingSettings, load_settings
from .errors import (
	BookingError,
	BookingStorageError,
	CapacityExceededError,
	ConflictError,
	ForbiddenError,
	InvalidArgumentError,
	InvalidRangeError,
	InvalidStateError,
	MissingFieldError,
	NotFoundError,
	NotInFutureError,
	UnauthenticatedError,
)
from .models import (
	Actor,
	BookingRecord,
	BookingStatus,
	IntervalRecord,
	IntervalWithCount,
	OwnerKind,
	OwnerRecord,
	Page,
	UserRecord,
	UserRole,
)
from .reservations import ReservationService
from .scheduling import SchedulingService
from .services import BookingServices, build_services
from .users import TokenIdentityProvider, UserService
from .yaml_store import BookingYamlRepository

__all__ = [
	"AuthorizationGuard",
	"find_conflicts",
	"has_time_overlap",
	"normalize_to_minute",
	"validate_range",
	"CapacityAccountant",
	"BookingSettings",
	"load_settings",
	"BookingError",
	"BookingStorageError",
	"CapacityExceededError",
	"ConflictError",
	"ForbiddenError",
	"InvalidArgumentError",
	"InvalidRangeError",
	"InvalidStateError",
	"MissingFieldError",
	"NotFoundError",
	"NotInFutureError",
	"UnauthenticatedError",
	"Actor",
	"BookingRecord",
	"BookingStatus",
	"IntervalRecord",
	"IntervalWithCount",
	"OwnerKind",
	"OwnerRecord",
	"Page",
	"UserRecord",
	"UserRole",
	"ReservationService",
	"SchedulingService",
	"BookingServices",
	"build_services",
	"TokenIdentityProvider",
	"UserService",
	"BookingYamlRepository",
]
