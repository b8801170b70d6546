"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from resumable_upload.api import upload
from resumable_upload.config import settings
from resumable_upload.core.exceptions import ErrorCategory, UploadException
from resumable_upload.services.db_service import db_service
from resumable_upload.services.ledger_service import MongoSessionLedger, SessionLedger
from resumable_upload.services.minio_service import MinioService
from resumable_upload.services.verification_service import VerificationService
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifecycle management

    Connects the session ledger and the storage signer unless they were injected.
    """
    logger.info(f"Starting {settings.app_name}...")

    owns_database = getattr(app.state, "ledger", None) is None
    if owns_database:
        db = await db_service.connect()
        app.state.database = db_service
        _install_services(app, MongoSessionLedger(db), getattr(app.state, "broker", None))

    yield  # Application runtime

    logger.info(f"Shutting down {settings.app_name}...")
    if owns_database:
        await db_service.disconnect()


def _install_services(app: FastAPI, ledger: SessionLedger, broker: Optional[MinioService]) -> None:
    app.state.ledger = ledger
    app.state.broker = broker or MinioService()
    app.state.verifier = VerificationService(ledger)


def create_application(
    ledger: Optional[SessionLedger] = None,
    broker: Optional[MinioService] = None
) -> FastAPI:
    """Create and configure FastAPI application instance

    Args:
        ledger: Pre-built session ledger; when omitted MongoDB is connected at startup.
        broker: Pre-built grant issuer; when omitted a MinIO signer is created.
    """
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Session broker for resumable chunked uploads to object storage",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    if ledger is not None:
        _install_services(application, ledger, broker)
    elif broker is not None:
        application.state.broker = broker

    # Cross-origin policy stays permissive; browsers call the broker directly
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(application)
    _register_routes(application)

    logger.info(f"Application '{settings.app_name}' v{settings.app_version} created successfully")
    return application


def _error_body(request: Request, code: str, message: str, **extra: Any) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "path": str(request.url.path),
            **extra
        }
    }


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers for consistent error responses"""

    @app.exception_handler(UploadException)
    async def upload_exception_handler(request: Request, exc: UploadException) -> JSONResponse:
        """Handle application exceptions that escaped an endpoint"""
        logger.error(
            f"Upload exception occurred: {exc.message}",
            extra={
                "upload_error": exc.to_dict(),
                "request_path": request.url.path,
                "request_method": request.method
            }
        )
        status_code = _map_error_category_to_status_code(exc.category)
        message = exc.message if status_code < 500 else "Internal server error"
        return JSONResponse(status_code=status_code, content=_error_body(request, exc.error_code, message))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions raised by endpoints"""
        logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, f"HTTP_{exc.status_code}", exc.detail)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request body validation failures"""
        logger.warning(f"Validation error: {exc}")
        return JSONResponse(
            status_code=422,
            content=_error_body(request, "VALIDATION_ERROR", "Request validation failed",
                                details=jsonable_errors(exc))
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for uncaught exceptions"""
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
            extra={"request_path": request.url.path, "request_method": request.method}
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(request, "INTERNAL_SERVER_ERROR", "Internal server error")
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without non-serializable context objects."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def _register_routes(app: FastAPI) -> None:
    """Register API routes with the FastAPI application"""

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        database = getattr(request.app.state, "database", None)
        if database is not None and not await database.health_check():
            return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})
        return {"status": "healthy"}

    app.include_router(upload.router, tags=["upload"])


def _map_error_category_to_status_code(category: ErrorCategory) -> int:
    """Map error categories to HTTP status codes"""
    status_code_mapping: Dict[ErrorCategory, int] = {
        ErrorCategory.VALIDATION: 422,
        ErrorCategory.BUSINESS_LOGIC: 400,
        ErrorCategory.DATABASE: 500,
        ErrorCategory.STORAGE: 500,
        ErrorCategory.NETWORK: 500,
        ErrorCategory.SYSTEM: 500
    }
    return status_code_mapping.get(category, 500)


def run() -> None:
    """Console entry point: serve the broker with uvicorn."""
    # Lazy import uvicorn to avoid dependency if not running directly
    import uvicorn

    logger.info(f"Environment: {settings.environment.value}")
    uvicorn.run(
        "resumable_upload.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
        access_log=True
    )


# Create FastAPI application instance
app: FastAPI = create_application()

if __name__ == "__main__":
    run()
