"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from monthly_payroll.api.routes import (
    employee_codes_router,
    health_router,
    insurance_router,
    payrolls_router,
)
from monthly_payroll.calculators.rate_table import (
    LookupUnavailableError,
    OverlappingBracketsError,
    get_insurance_cache,
)
from monthly_payroll.config import get_settings
from monthly_payroll.database import dispose_db, init_db

logger = logging.getLogger(__name__)


async def warm_insurance_cache() -> None:
    """Warm the insurance rate cache at startup. Failures are logged only."""
    if get_settings().skip_insurance_warmup:
        logger.info("Skipping insurance rate cache warm-up (SKIP_INSURANCE_CACHE set)")
        return
    try:
        await get_insurance_cache().warm_up()
    except (LookupUnavailableError, OverlappingBracketsError) as exc:
        logger.warning("Insurance rate cache warm-up failed at startup: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    await warm_insurance_cache()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Monthly Payroll API",
        description="Monthly payroll calculation and approval",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payrolls_router, prefix="/api/v1")
    app.include_router(employee_codes_router, prefix="/api/v1")
    app.include_router(insurance_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
