"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.admin import router as admin_router
from src.api.bills import router as bills_router
from src.api.consumers import router as consumers_router
from src.config.settings import get_settings
from src.models import Base
from src.services.db import engine
from src.services.errors import BillingError, PersistenceError, error_response
from src.services.logging import setup_server_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
    yield
    logger.info("Application shutting down")


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Map billing validation errors to their 4xx response."""
    return JSONResponse(status_code=exc.http_status, content=error_response(exc))


async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": {"code": exc.code, "message": "Server error"}},
    )


def create_app() -> FastAPI:
    """Build the FastAPI application with billing routes and error handlers."""
    settings = get_settings()
    app = FastAPI(
        title=settings.api_title,
        description="Electricity billing: 60-day reading/payment cycle, fines and reminders",
        version=settings.api_version,
        lifespan=lifespan,
    )
    app.add_exception_handler(BillingError, billing_error_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)

    app.include_router(consumers_router)
    app.include_router(admin_router)
    app.include_router(bills_router)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {"status": "ok"}

    return app


app = create_app()


def main(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API server."""
    load_dotenv()
    settings = get_settings()
    setup_server_logging(settings.log_file, settings.log_level)
    logger.info("Starting billing API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
