"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from uplaw.api.v1.api import api_router
from uplaw.core.config import Settings, settings as default_settings
from uplaw.core.logger import configure_logging, logger
from uplaw.db.database import build_session_factory, create_db_engine, init_db
from uplaw.middleware.correlation import CorrelationMiddleware
from uplaw.services.storage_service import S3StorageService
from uplaw.utils.exceptions import UplawError

_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def _error_body(message: str, code: str, status_code: int) -> dict:
    return {
        "success": False,
        "message": message,
        "error": {"code": code, "statusCode": status_code},
    }


async def uplaw_error_handler(request: Request, exc: UplawError):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail, exc.error_code, exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), code, exc.status_code),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content=_error_body(message, "BAD_REQUEST", 400))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=_error_body("An unexpected error occurred", "INTERNAL_ERROR", 500),
    )


def create_app(
    app_settings: Settings = None,
    session_factory=None,
    storage=None,
) -> FastAPI:
    """
    Build the application. The database session factory and the storage
    gateway are created once at startup (or injected, e.g. by tests) and
    handed to request handlers through app.state.
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(app_settings.LOG_LEVEL)
        engine = None
        if app.state.session_factory is None:
            engine = create_db_engine(app_settings.DATABASE_URL)
            if app_settings.DEBUG:
                init_db(engine)
            app.state.session_factory = build_session_factory(engine)
        if app.state.storage is None:
            app.state.storage = S3StorageService(app_settings)
        logger.info(f"{app_settings.APP_NAME} API started")
        yield
        if engine is not None:
            engine.dispose()
        logger.info(f"{app_settings.APP_NAME} API stopped")

    app = FastAPI(
        title=app_settings.APP_NAME,
        version="1.0.0",
        docs_url="/docs" if app_settings.DEBUG else None,
        redoc_url="/redoc" if app_settings.DEBUG else None,
        openapi_url="/openapi.json" if app_settings.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.storage = storage

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(api_router, prefix="/api/v1")

    # ── Middleware ────────────────────────────────────────────────────────────
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

    # ── Error responses ───────────────────────────────────────────────────────
    app.add_exception_handler(UplawError, uplaw_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/")
    def read_root():
        return {"message": f"{app_settings.APP_NAME} API is running", "version": "1.0.0"}

    @app.get("/health")
    def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
