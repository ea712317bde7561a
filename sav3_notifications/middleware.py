import time
import logging
from typing import Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .application.ports.rate_limiter import RateLimiter
from .core.config import settings
from .exceptions import ErrorCode
from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from .responses import error_response
from .utils import generate_request_id

logger = logging.getLogger(__name__)


def build_rate_limiter() -> RateLimiter:
    if settings.REDIS_URL:
        try:
            limiter = RedisRateLimiter(settings.REDIS_URL)
            limiter.client.ping()
            logger.info("Using Redis rate limiter")
            return limiter
        except Exception as e:
            logger.warning(f"Redis unavailable for rate limiting, falling back to memory: {e}")
    return InMemoryRateLimiter()


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request.state.request_id = request.headers.get("X-Request-ID") or generate_request_id()
        request.state.start_time = time.perf_counter()
        response = await call_next(request)
        response.headers.setdefault("X-Request-ID", request.state.request_id)
        if "X-Response-Time" not in response.headers:
            elapsed = int((time.perf_counter() - request.state.start_time) * 1000)
            response.headers["X-Response-Time"] = f"{elapsed}ms"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXEMPT_PATHS = ("/health",)

    def __init__(self, app: ASGIApp, limiter: Optional[RateLimiter] = None, max_requests: Optional[int] = None, window_seconds: Optional[int] = None):
        super().__init__(app)
        self.limiter = limiter or build_rate_limiter()
        self.max_requests = max_requests or settings.RATE_LIMIT_PER_MINUTE
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SEC

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        key = f"ip:{client_ip}"
        if not self.limiter.allow(key, self.max_requests, self.window_seconds):
            retry_after = self.limiter.retry_after(key, self.window_seconds) or self.window_seconds
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return error_response(
                request,
                ErrorCode.RATE_LIMITED,
                "Too many requests. Please try again later.",
                {"retryAfter": retry_after},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_host = request.client.host if request.client else "unknown"
        request_id = getattr(request.state, "request_id", "-")
        logger.info(f"Request: {request.method} {request.url.path} from {client_host} [{request_id}]")

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(f"Response: {response.status_code} in {duration:.3f}s [{request_id}]")

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last line of defence; also records the failure with the error capture client, if any."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error: {str(e)}", exc_info=True)
            capture = getattr(request.app.state, "error_capture", None)
            if capture is not None:
                capture.capture_exception(e, url=str(request.url))
            details = {"exception": type(e).__name__, "message": str(e)} if settings.DEBUG else None
            return error_response(request, ErrorCode.INTERNAL_ERROR, "Internal server error", details)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                size = 0
            if size > settings.MAX_REQUEST_SIZE:
                return error_response(
                    request,
                    ErrorCode.BAD_REQUEST,
                    "Request entity too large",
                    {"maxBytes": settings.MAX_REQUEST_SIZE},
                    status_code=413,
                )
        return await call_next(request)
