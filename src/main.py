import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from src.config import settings
from src.core.logging import configure_logging
from src.shared.exceptions import (
    ContractOSError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from src.shared.validation import field_errors

logger = logging.getLogger(__name__)


def _error(status_code: int, detail: str, errors: list | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "errors": errors or []})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(422, str(exc), exc.errors)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        errors = field_errors(exc.errors())
        return _error(422, "; ".join(f"{e['field']}: {e['message']}" for e in errors), errors)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError):
        return _error(409, str(exc))

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error(503, str(exc))

    @app.exception_handler(ContractOSError)
    async def contractos_error_handler(request: Request, exc: ContractOSError):
        logger.error(f"Unhandled domain error on {request.url.path}: {exc}", exc_info=exc)
        return _error(500, str(exc))


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
    )

    # Routers
    from src.routes.v1.api import api_router

    app.include_router(api_router, prefix=settings.API_V1_STR)
    register_exception_handlers(app)

    # Locally stored uploads (fallback when the bucket is unavailable)
    app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

    # Set all CORS enabled origins
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Health Check
    @app.get("/health")
    def health_check():
        from src.storage.factory import resolve_storage_mode
        from src.storage.mirrored import mirror_failure_counts

        return {
            "status": "ok",
            "version": settings.VERSION,
            "storage_mode": resolve_storage_mode().value,
            "mirror_failures": mirror_failure_counts(),
        }

    return app

app = create_app()
