"""
Location verification interface.
Check-in consumes it as a pass/fail capability.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Position:
    """Client-reported coordinates."""

    latitude: float
    longitude: float
    accuracy: Optional[float] = None  # metres


@dataclass(frozen=True)
class LocationCheck:
    """Outcome of a verification, with diagnostics for the caller."""

    is_valid: bool
    library_id: Optional[str] = None
    distance: Optional[int] = None  # metres, rounded
    error: Optional[str] = None


class LocationVerifier(ABC):
    """
    Interface for check-in location verification.

    Implementations:
    - GeoFenceVerifier: distance from configured library geofences
    - DisabledLocationVerifier: accepts everyone (kiosks, local development)
    """

    @abstractmethod
    async def verify(self, position: Optional[Position]) -> LocationCheck:
        """
        Decide whether the actor is inside an authorized zone.

        Args:
            position: Coordinates sent by the client, None if unavailable

        Returns:
            LocationCheck with is_valid set
        """
        pass
