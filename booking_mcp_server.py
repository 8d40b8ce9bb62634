from __future__ import annotations

from functools import lru_cache
from typing import Any

from mcp.server.fastmcp import FastMCP

from booking_engine import BookingServices, OwnerKind, build_services, load_settings

mcp = FastMCP(
    "Booking MCP Server",
    instructions="Inspect schedules and apply operator overrides for the booking_engine project.",
    json_response=True,
)


@lru_cache(maxsize=1)
def get_services() -> BookingServices:
    return build_services(load_settings())


@mcp.resource("booking://resources")
async def list_resources() -> list[dict[str, Any]]:
    """List resources that own bookable slots."""
    return [owner.to_dict() for owner in get_services().scheduling.list_owners(OwnerKind.RESOURCE)]


@mcp.resource("booking://courses")
async def list_courses() -> list[dict[str, Any]]:
    """List courses that own bookable sessions."""
    return [owner.to_dict() for owner in get_services().scheduling.list_owners(OwnerKind.COURSE)]


@mcp.tool()
def list_intervals(owner_id: int | None = None, page: int = 0, size: int = 20) -> list[dict[str, Any]]:
    """Return intervals with their active booking counts, optionally filtered by owner."""
    result = get_services().scheduling.list_intervals(page=page, size=size, owner_id=owner_id)
    return [item.to_dict() for item in result.content]


@mcp.tool()
def override_booking_status(booking_id: int, status: str) -> dict[str, Any]:
    """Force a booking into any status, bypassing ownership and time rules."""
    return get_services().reservations.update_status(booking_id, status).to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
