"""
FastAPI application entry point.
Sets up the API with lifespan events for database initialization.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.config import settings, AuthorizationMode
from app.database import init_db
from app.api.router import api_router
from app.auth.firebase import initialize_firebase
from app.exceptions import add_exception_handlers
from app.middleware.metrics_middleware import MetricsMiddleware
from app.utils.logging import configure_logging

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    - Startup: Initialize database and Firebase Admin SDK
    """
    configure_logging('nc-api', settings.log_level)

    if settings.authorization_mode is AuthorizationMode.DISABLED:
        logger.warning(
            "ENABLE_USER_MANAGEMENT is false: key verification and quotas are off for every route"
        )

    await init_db()

    # Session cookies are only a fallback; skip when Firebase is not configured
    if settings.firebase_project_id:
        try:
            initialize_firebase()
        except Exception as e:
            if settings.environment == "production":
                raise
            logger.warning(f"Firebase initialization failed: {e}")

    yield


# Create FastAPI app
app = FastAPI(
    title="Note Companion API",
    description="Metered AI endpoints for the Note Companion plugin",
    version=APP_VERSION,
    lifespan=lifespan
)

# CORS middleware (plugin requests come from the editor's origin)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware (must be after CORS to track all requests)
app.add_middleware(MetricsMiddleware)

add_exception_handlers(app)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Note Companion API",
        "version": APP_VERSION,
        "environment": settings.environment
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
