"""
ForSure Web API
FastAPI + JSON
"""
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.web.dependencies import Services, build_services
from app.web.routers import api
from forsure.db.engine import get_session_factory
from forsure.exceptions import (
    DuplicateCustomerError,
    ForSureError,
    InputValidationError,
    NotFoundError,
    StoreError,
)
from forsure.utils.logging_config import setup_default_logging

# Configure loguru
setup_default_logging()


def _generate_error_id() -> str:
    """Generate a short error ID for tracking."""
    return str(uuid.uuid4())[:8].upper()


def _error_json(
    status_code: int, error: str, message: str, request: Request, error_id: str | None = None, **extra
) -> JSONResponse:
    content = {
        "error": error,
        "message": message,
        "error_id": error_id or _generate_error_id(),
        "path": str(request.url.path),
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("ForSure API starting up...")
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(get_session_factory())
        yield
        logger.info("ForSure API shutting down...")

    app = FastAPI(
        title="ForSure",
        description="Customer reliability tracking with a privacy-preserving shared network",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.include_router(api.router, prefix="/api")

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError):
        logger.info(f"Rejected input on {request.method} {request.url.path}: {exc}")
        return _error_json(422, "validation_error", str(exc), request, field=exc.field)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or None
        return _error_json(422, "validation_error", first.get("msg", "Invalid request"), request, field=field)

    @app.exception_handler(DuplicateCustomerError)
    async def duplicate_handler(request: Request, exc: DuplicateCustomerError):
        return _error_json(
            409,
            "duplicate_customer",
            str(exc),
            request,
            matched_on=exc.matched_on,
            existing_customer_id=exc.existing_customer_id,
            existing_customer_name=exc.existing_customer_name,
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error_json(404, "not_found", str(exc), request)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        error_id = _generate_error_id()
        logger.error(f"Store error [ID: {error_id}]: {exc} - {request.url.path}")
        response = _error_json(
            503, "store_unavailable", "The data store is temporarily unavailable.", request, error_id=error_id
        )
        response.headers["Retry-After"] = "30"
        return response

    @app.exception_handler(ForSureError)
    async def forsure_error_handler(request: Request, exc: ForSureError):
        logger.warning(f"Unmapped core error on {request.url.path}: {type(exc).__name__}: {exc}")
        return _error_json(400, "request_failed", str(exc), request)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 400:
            log_fn = logger.warning if exc.status_code < 500 else logger.error
            log_fn(f"HTTP {exc.status_code}: {exc.detail} - {request.method} {request.url}")
        return _error_json(exc.status_code, "http_error", str(exc.detail), request, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions with detailed logging."""
        error_id = _generate_error_id()
        tb = traceback.format_exc()
        logger.error(
            f"Unhandled exception [ID: {error_id}]\n"
            f"Request: {request.method} {request.url}\n"
            f"Exception: {type(exc).__name__}: {exc}\n"
            f"Traceback:\n{tb}"
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": f"An unexpected error occurred: {type(exc).__name__}",
                "error_id": error_id,
                "path": str(request.url.path),
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from config.settings import WEB_HOST, WEB_PORT

    uvicorn.run("app.web.main:app", host=WEB_HOST, port=WEB_PORT, reload=True)
