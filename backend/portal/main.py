"""Host Portal — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portal.api.v1.bookings import router as bookings_router
from portal.api.v1.kpis import router as kpis_router
from portal.api.v1.ledger import router as ledger_router
from portal.api.v1.plans import router as plans_router
from portal.config import settings
from portal.kpi.errors import KPIError, TransientStoreError, UnassignedPropertyError, ValidationError

# Configure root logger so all portal.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    yield
    # Shutdown: dispose engine connections
    from portal.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Property-management portal: ledger, bookings and monthly manager KPIs.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# KPI engine errors
# ---------------------------------------------------------------------------


def _error_response(exc: KPIError, status_code: int, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(ValidationError)
async def kpi_validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(exc, status.HTTP_422_UNPROCESSABLE_ENTITY)


@app.exception_handler(UnassignedPropertyError)
async def unassigned_property_handler(request: Request, exc: UnassignedPropertyError) -> JSONResponse:
    return _error_response(exc, status.HTTP_422_UNPROCESSABLE_ENTITY)


@app.exception_handler(TransientStoreError)
async def kpi_store_busy_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(exc, status.HTTP_503_SERVICE_UNAVAILABLE, headers={"Retry-After": "1"})


# Routers
app.include_router(ledger_router)
app.include_router(bookings_router)
app.include_router(plans_router)
app.include_router(kpis_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
