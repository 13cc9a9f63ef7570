"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from fitstudio.api.routes import terms, bookings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(terms.router)
api_router.include_router(bookings.router)
