"""
FastAPI Application Entry Point.

This is the main application file for the Cab Booking Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from cabbooking.app.core.config import settings
from cabbooking.app.api.v1.router import router as api_v1_router
from cabbooking.app.core.dependencies import notification_service
from cabbooking.app.core.observability import ObservabilityMiddleware, configure_logging
from cabbooking.app.db.session import engine, Base
from cabbooking.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from cabbooking.app.models.user import User
from cabbooking.app.models.booking import Booking
from cabbooking.app.models.offer import Offer
from cabbooking.app.models.rating import Rating

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Waits for in-flight notification deliveries on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await notification_service.drain()
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Booking negotiation backend for a ride-hailing platform",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Cab Booking Backend API",
        "docs": "/docs",
        "health": "/health",
    }
