"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from procession_booking import __version__
from procession_booking.api import api_router, webhook_router
from procession_booking.config import settings
from procession_booking.database import init_database, close_database
from procession_booking.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from procession_booking.utils.logging_config import setup_logging

setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file="logs/procession_booking.log" if settings.environment == "production" else None,
    enable_json_logging=settings.enable_json_logging or settings.environment == "production",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting procession booking engine")
    await init_database()
    yield
    logger.info("Shutting down procession booking engine")
    await close_database()


app = FastAPI(
    title="Procession Seat Booking API",
    description="""
    Seat reservations for procession days.

    * **Cart**: stage seats per seat type and day
    * **Bookings**: check out the cart into time-limited holds
    * **Payments**: open a PayHere order for pending bookings and receive its notifications
    * **Admin**: status overrides and on-demand maintenance

    Holds that are not paid in time are expired by a background maintenance
    pass, which also returns seats from cancelled bookings.

    Authenticate with `Authorization: Bearer <token>`.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "cart", "description": "Seat staging before checkout"},
        {"name": "bookings", "description": "Seat holds and purchases"},
        {"name": "payments", "description": "Checkout and gateway notifications"},
        {"name": "admin", "description": "Administrative operations"},
        {"name": "health", "description": "Service health"},
    ],
    lifespan=lifespan,
)

# Middleware: the last one added wraps the others
app.add_middleware(LoggingMiddleware)
app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)

if settings.debug:
    cors_origins = ["*"]
    cors_allow_credentials = False  # Cannot use credentials with wildcard origins
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers
)

app.include_router(api_router)
app.include_router(webhook_router)


@app.get("/", tags=["health"])
async def root():
    """Basic information about the API."""
    return {
        "message": "Procession Seat Booking API",
        "version": __version__,
        "docs_url": "/docs",
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check():
    return {"status": "healthy", "service": "procession-booking"}
