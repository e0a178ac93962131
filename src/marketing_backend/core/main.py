"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from marketing_backend.api.v1 import auth
from marketing_backend.core.database import Base, check_connection, engine
from marketing_backend.core.dependencies import get_settings
from marketing_backend.core.errors import SallaError, salla_error_handler
from marketing_backend.core.settings import Provider
from marketing_backend.plugins.salla import create_salla_router

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("api")


# Request tracing middleware
class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Request tracing middleware."""

    async def dispatch(self, request: Request, call_next: Callable) -> Any:
        # Query strings are left out, they carry OAuth codes and state
        logger.info("Request: %s %s", request.method, request.url.path)

        response = await call_next(request)

        logger.info("Response status: %s", response.status_code)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan for the FastAPI application."""
    logger.info("Initializing database...")
    check_connection()
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized successfully!")
    yield


# Resolve the settings at startup; missing Salla client credentials stop the app here
settings = get_settings(Provider.SALLA)

app = FastAPI(
    title="Marketing Dashboard API",
    description="API for the marketing dashboard store integrations",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request tracing middleware
app.add_middleware(RequestTracingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.add_exception_handler(SallaError, salla_error_handler)  # type: ignore[arg-type]

# Include routers
app.include_router(create_salla_router(settings), prefix="/api/salla")
app.include_router(auth.router, prefix="/api/v1")


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {"message": "Welcome to the Marketing Dashboard API"}
