from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware

# Load environment variables as early as possible
load_dotenv()

from .core.config import settings
from .database import create_db_and_tables
from .diagnostics.error_capture import ErrorCaptureClient, ErrorCaptureConfig
from .exceptions import (
    APIException,
    api_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from .middleware import (
    ErrorHandlingMiddleware,
    LoggingMiddleware,
    RateLimitMiddleware,
    RequestSizeLimitMiddleware,
    RequestTrackingMiddleware,
    SecurityMiddleware,
)
from .responses import EXPOSED_HEADERS, success_response
from .routers import campaigns_router, devices_router, notifications_router, settings_router
from .utils import utcnow

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    app.state.db_init_ok = True
    app.state.db_init_error = None
    try:
        create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Do not crash the app; report via health endpoint
        app.state.db_init_ok = False
        app.state.db_init_error = str(e)
        logger.exception("Database initialization failed")

    capture_config = ErrorCaptureConfig.from_settings()
    app.state.error_capture = ErrorCaptureClient(capture_config).init() if capture_config.enabled else None
    yield
    # Shutdown
    if app.state.error_capture is not None:
        await app.state.error_capture.destroy()
    logger.info(f"Shutting down {settings.APP_NAME}...")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if settings.DOCS_ENABLED else None),
        redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
    )
    app.state.error_capture = None
    app.state.extra_senders = []

    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Added last runs first: request tracking wraps everything else
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=settings.GZIP_MIN_SIZE)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )
    app.add_middleware(RequestTrackingMiddleware)

    # static sub-paths must be registered before /notifications/{notification_id}
    app.include_router(settings_router.router, prefix=settings.API_PREFIX)
    app.include_router(devices_router.router, prefix=settings.API_PREFIX)
    app.include_router(campaigns_router.router, prefix=settings.API_PREFIX)
    app.include_router(notifications_router.router, prefix=settings.API_PREFIX)

    @app.get("/health")
    def health_check(request: Request):
        return success_response(request, {
            "status": "healthy" if getattr(app.state, "db_init_ok", True) else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": utcnow().isoformat() + "Z",
            "environment": settings.ENV,
            "database": {
                "ok": getattr(app.state, "db_init_ok", True),
                "error": getattr(app.state, "db_init_error", None)
            },
            "errorCapture": {
                "enabled": app.state.error_capture is not None,
                "connected": bool(app.state.error_capture and app.state.error_capture.connected),
            },
        })

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("sav3_notifications.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
