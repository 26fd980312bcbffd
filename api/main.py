"""
Shop Credit Ledger API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from api import __version__
from api.dependencies import get_container
from domain.errors import ConflictError, NotFoundError, ValidationError

config.configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Only close a container that was actually built.
    if get_container.cache_info().currsize:
        get_container().close()


# Create FastAPI application
app = FastAPI(
    title="Shop Credit Ledger API",
    description="REST and WebSocket API for recording credit sales, payments and customer balances",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in config.CLIENT_URL.split(",")],
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)


def _error(status_code: int, exc: Exception, field=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "detail": str(exc),
            "field": field,
            "status_code": status_code,
        },
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, exc, exc.field)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    logger.warning(f"Conflict on {request.method} {request.url.path}: {exc}")
    return _error(409, exc)


@app.exception_handler(RuntimeError)
async def storage_error_handler(request: Request, exc: RuntimeError):
    logger.error(f"ERROR in {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _error(500, exc)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "shop-credit-ledger-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Shop Credit Ledger API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import customers, dashboard, events, purchases

app.include_router(customers.router, prefix="/api/v1", tags=["Customers"])
app.include_router(purchases.router, prefix="/api/v1", tags=["Purchases"])
app.include_router(dashboard.router, prefix="/api/v1", tags=["Dashboard"])
app.include_router(events.router, prefix="/api/v1", tags=["Events"])
