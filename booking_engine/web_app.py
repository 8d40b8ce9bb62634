from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .config import BookingSettings
from .errors import (
    BookingError,
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    MissingFieldError,
    NotFoundError,
    UnauthenticatedError,
)
from .models import Actor, OwnerKind, Page
from .services import build_services

logger = logging.getLogger(__name__)

ADMIN_SECRET_HEADER = "X-Admin-Secret"

ERROR_STATUS: dict[type[BookingError], int] = {
    UnauthenticatedError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    CapacityExceededError: 422,
}

OWNER_ROUTES = {"resources": OwnerKind.RESOURCE, "courses": OwnerKind.COURSE}


def status_for(error: BookingError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 400


def create_app(
    data_dir: str | Path = "data",
    now_provider: Callable[[], datetime] | None = None,
    settings: BookingSettings | None = None,
) -> Flask:
    app = Flask(__name__)
    settings = settings or BookingSettings(data_dir=str(data_dir))
    services = build_services(settings, now_provider)
    clock: Callable[[], datetime] = now_provider or datetime.now
    app.extensions["booking_services"] = services

    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError) -> Any:
        status = status_for(error)
        if status >= 403:
            logger.info("%s %s -> %s %s", request.method, request.path, status, error.message)
        return (
            jsonify(
                {
                    "ok": False,
                    "error": error.category,
                    "message": error.message,
                    "path": request.path,
                    "timestamp": clock().isoformat(timespec="seconds"),
                }
            ),
            status,
        )

    def _current_actor() -> Actor:
        return services.identity.resolve_actor(request.headers.get("Authorization"))

    def _require_admin() -> Actor:
        actor = _current_actor()
        if not actor.is_admin:
            raise ForbiddenError("Access denied")
        return actor

    def _payload() -> dict[str, Any]:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}

    def _page_args() -> tuple[int, int]:
        page = _parse_int(request.args.get("page"), "page")
        size = _parse_int(request.args.get("size"), "size")
        page = 0 if page is None else page
        size = settings.default_page_size if size is None else size
        if page < 0:
            raise InvalidArgumentError("page must not be negative")
        if size <= 0 or size > settings.max_page_size:
            raise InvalidArgumentError(f"size must be between 1 and {settings.max_page_size}")
        return page, size

    # users

    @app.post("/api/users")
    def register_user() -> Any:
        payload = _payload()
        user = services.users.register(
            email=payload.get("email"),
            full_name=payload.get("full_name"),
            role=payload.get("role"),
            admin_secret=request.headers.get(ADMIN_SECRET_HEADER),
        )
        return jsonify({"ok": True, "user": user.to_dict()}), 201

    @app.get("/api/users")
    def list_users() -> Any:
        _current_actor()
        page, size = _page_args()
        return jsonify(_serialize_page(services.users.list_users(page, size), lambda user: user.to_dict(include_token=False)))

    @app.get("/api/users/<int:user_id>")
    def get_user(user_id: int) -> Any:
        _current_actor()
        return jsonify({"ok": True, "user": services.users.get(user_id).to_dict(include_token=False)})

    @app.put("/api/users/<int:user_id>")
    def update_user(user_id: int) -> Any:
        actor = _current_actor()
        services.guard.require_owner_or_elevated(user_id, actor, "update user")
        payload = _payload()
        user = services.users.update(
            user_id,
            email=payload.get("email"),
            full_name=payload.get("full_name"),
            role=payload.get("role"),
            admin_secret=request.headers.get(ADMIN_SECRET_HEADER),
        )
        return jsonify({"ok": True, "user": user.to_dict(include_token=False)})

    @app.delete("/api/users/<int:user_id>")
    def delete_user(user_id: int) -> Any:
        _require_admin()
        services.users.delete(user_id)
        return "", 204

    # resources and courses

    def _register_owner_routes(segment: str, kind: OwnerKind) -> None:
        def list_owners() -> Any:
            _current_actor()
            return jsonify({"ok": True, segment: [owner.to_dict() for owner in services.scheduling.list_owners(kind)]})

        def get_owner(owner_id: int) -> Any:
            _current_actor()
            return jsonify({"ok": True, "owner": services.scheduling.get_owner(owner_id, kind).to_dict()})

        def create_owner() -> Any:
            _require_admin()
            owner = services.scheduling.create_owner(kind, _payload().get("name"))
            return jsonify({"ok": True, "owner": owner.to_dict()}), 201

        def rename_owner(owner_id: int) -> Any:
            _require_admin()
            owner = services.scheduling.rename_owner(owner_id, _payload().get("name"), kind)
            return jsonify({"ok": True, "owner": owner.to_dict()})

        def delete_owner(owner_id: int) -> Any:
            _require_admin()
            services.scheduling.delete_owner(owner_id, kind)
            return "", 204

        base = f"/api/{segment}"
        app.add_url_rule(base, f"list_{segment}", list_owners, methods=["GET"])
        app.add_url_rule(base, f"create_{segment}", create_owner, methods=["POST"])
        app.add_url_rule(f"{base}/<int:owner_id>", f"get_{segment}", get_owner, methods=["GET"])
        app.add_url_rule(f"{base}/<int:owner_id>", f"rename_{segment}", rename_owner, methods=["PUT"])
        app.add_url_rule(f"{base}/<int:owner_id>", f"delete_{segment}", delete_owner, methods=["DELETE"])

    for segment, kind in OWNER_ROUTES.items():
        _register_owner_routes(segment, kind)

    # intervals

    @app.get("/api/intervals")
    def list_intervals() -> Any:
        _current_actor()
        page, size = _page_args()
        result = services.scheduling.list_intervals(
            page=page,
            size=size,
            sort=request.args.get("sort"),
            owner_id=_parse_int(request.args.get("owner_id"), "owner_id"),
        )
        return jsonify(_serialize_page(result, lambda item: item.to_dict()))

    @app.get("/api/intervals/<int:interval_id>")
    def get_interval(interval_id: int) -> Any:
        _current_actor()
        return jsonify({"ok": True, "interval": services.scheduling.get_interval(interval_id).to_dict()})

    @app.post("/api/intervals")
    def create_interval() -> Any:
        _require_admin()
        payload = _payload()
        interval = services.scheduling.create_interval(
            owner_id=_parse_int(payload.get("owner_id"), "owner_id"),
            start=_parse_datetime(payload.get("start"), "start"),
            end=_parse_datetime(payload.get("end"), "end"),
            capacity=_parse_int(payload.get("capacity"), "capacity"),
        )
        return jsonify({"ok": True, "interval": interval.to_dict()}), 201

    @app.put("/api/intervals/<int:interval_id>")
    def update_interval(interval_id: int) -> Any:
        _require_admin()
        payload = _payload()
        interval = services.scheduling.update_interval(
            interval_id,
            owner_id=_parse_int(payload.get("owner_id"), "owner_id"),
            start=_parse_datetime(payload.get("start"), "start"),
            end=_parse_datetime(payload.get("end"), "end"),
            capacity=_parse_int(payload.get("capacity"), "capacity"),
        )
        return jsonify({"ok": True, "interval": interval.to_dict()})

    @app.delete("/api/intervals/<int:interval_id>")
    def delete_interval(interval_id: int) -> Any:
        _require_admin()
        cascade = str(request.args.get("cascade", "false")).lower() in {"1", "true", "yes"}
        services.scheduling.delete_interval(interval_id, cascade=cascade)
        return "", 204

    # bookings

    @app.get("/api/bookings")
    def list_bookings() -> Any:
        _current_actor()
        page, size = _page_args()
        return jsonify(_serialize_page(services.reservations.list_bookings(page, size), lambda booking: booking.to_dict()))

    @app.get("/api/bookings/<int:booking_id>")
    def get_booking(booking_id: int) -> Any:
        _current_actor()
        return jsonify({"ok": True, "booking": services.reservations.get(booking_id).to_dict()})

    @app.post("/api/bookings")
    def create_booking() -> Any:
        payload = _payload()
        interval_id = _parse_int(payload.get("interval_id"), "interval_id")
        user_id = _parse_int(payload.get("user_id"), "user_id")
        if interval_id is None:
            raise MissingFieldError("interval_id is required")
        booking = services.reservations.create(interval_id, _current_actor(), user_id=user_id)
        return jsonify({"ok": True, "booking": booking.to_dict()}), 201

    @app.patch("/api/bookings/<int:booking_id>/cancel")
    def cancel_booking(booking_id: int) -> Any:
        booking = services.reservations.cancel(booking_id, _current_actor())
        return jsonify({"ok": True, "booking": booking.to_dict()})

    @app.patch("/api/bookings/<int:booking_id>/confirm")
    def confirm_booking(booking_id: int) -> Any:
        booking = services.reservations.confirm(booking_id, _current_actor())
        return jsonify({"ok": True, "booking": booking.to_dict()})

    @app.patch("/api/bookings/<int:booking_id>/status")
    def update_booking_status(booking_id: int) -> Any:
        _current_actor()
        status = request.args.get("status")
        if status is None:
            status = _payload().get("status")
        booking = services.reservations.update_status(booking_id, status)
        return jsonify({"ok": True, "booking": booking.to_dict()})

    @app.delete("/api/bookings/<int:booking_id>")
    def delete_booking(booking_id: int) -> Any:
        _current_actor()
        services.reservations.delete(booking_id)
        return "", 204

    return app


def _serialize_page(page: Page[Any], serialize: Callable[[Any], dict[str, Any]]) -> dict[str, Any]:
    return {
        "ok": True,
        "content": [serialize(item) for item in page.content],
        "page": page.page,
        "size": page.size,
        "total_elements": page.total_elements,
        "total_pages": page.total_pages,
        "last": page.last,
    }


def _parse_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, (bool, float)):
        raise InvalidArgumentError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"{field} must be an integer") from None


def _parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise InvalidArgumentError(f"{field} must be an ISO-8601 datetime") from None
    if parsed.tzinfo is not None:
        # stored times are naive local time
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed

