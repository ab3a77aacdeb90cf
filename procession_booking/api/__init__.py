"""API endpoints for the procession seat booking engine."""

from fastapi import APIRouter
from .admin import router as admin_router
from .bookings import router as bookings_router
from .cart import router as cart_router
from .payments import router as payments_router, webhook_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(cart_router)
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(admin_router)

__all__ = ["api_router", "webhook_router"]
