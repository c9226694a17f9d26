"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from library_seats.api.routes import seats, reservations, violations, detection, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(seats.router)
api_router.include_router(reservations.router)
api_router.include_router(violations.router)
api_router.include_router(detection.router)
api_router.include_router(users.router)
