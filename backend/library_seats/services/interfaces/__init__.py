"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .location import LocationCheck, LocationVerifier, Position

__all__ = ['LocationCheck', 'LocationVerifier', 'Position']
