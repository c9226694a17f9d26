"""
Location verification implementations and factory.
"""

import math
from typing import Optional, Sequence

from library_seats.core.config import LibraryLocation, get_settings
from library_seats.core.logging import get_logger
from library_seats.services.interfaces.location import LocationCheck, LocationVerifier, Position

logger = get_logger(__name__)

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in metres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class GeoFenceVerifier(LocationVerifier):
    """Valid when the position falls inside any configured library radius."""

    def __init__(self, locations: Sequence[LibraryLocation]):
        self.locations = list(locations)

    async def verify(self, position: Optional[Position]) -> LocationCheck:
        if position is None:
            return LocationCheck(is_valid=False, error="location_unavailable")

        nearest = None
        for library in self.locations:
            distance = haversine_distance(
                position.latitude, position.longitude, library.latitude, library.longitude
            )
            if distance <= library.radius:
                return LocationCheck(is_valid=True, library_id=library.id, distance=round(distance))
            if nearest is None or distance < nearest:
                nearest = distance

        logger.info("location_outside_geofence", nearest_distance=round(nearest) if nearest else None)
        return LocationCheck(
            is_valid=False,
            distance=round(nearest) if nearest is not None else None,
            error="outside_library",
        )


class DisabledLocationVerifier(LocationVerifier):
    """No verification - always valid."""

    async def verify(self, position: Optional[Position]) -> LocationCheck:
        return LocationCheck(is_valid=True)


_verifier: Optional[LocationVerifier] = None


def get_location_verifier() -> LocationVerifier:
    """Get configured verifier singleton. Also used as a FastAPI dependency."""
    global _verifier
    if _verifier is None:
        settings = get_settings()
        if settings.LOCATION_VERIFICATION_ENABLED:
            _verifier = GeoFenceVerifier(settings.LIBRARY_LOCATIONS)
        else:
            _verifier = DisabledLocationVerifier()
    return _verifier
