import logging
from enum import Enum
from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .core.config import settings
from .responses import error_response

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status_code(self) -> int:
        return _ERROR_STATUS[self][0]

    @property
    def retryable(self) -> bool:
        return _ERROR_STATUS[self][1]


_ERROR_STATUS = {
    ErrorCode.VALIDATION_ERROR: (400, False),
    ErrorCode.NOT_FOUND: (404, False),
    ErrorCode.UNAUTHORIZED: (401, False),
    ErrorCode.FORBIDDEN: (403, False),
    ErrorCode.BAD_REQUEST: (400, False),
    ErrorCode.RATE_LIMITED: (429, True),
    ErrorCode.INTERNAL_ERROR: (500, True),
}

_STATUS_TO_CODE = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
}


def code_for_status(status_code: int) -> ErrorCode:
    if status_code >= 500:
        return ErrorCode.INTERNAL_ERROR
    return _STATUS_TO_CODE.get(status_code, ErrorCode.BAD_REQUEST)


class APIException(HTTPException):
    def __init__(self, code: ErrorCode, message: str, details: Any = None, headers: Optional[dict] = None):
        super().__init__(status_code=code.status_code, detail=message, headers=headers)
        self.code = code
        self.message = message
        self.details = details

    @property
    def retryable(self) -> bool:
        return self.code.retryable


# Domain errors raised by application services. Routers never catch these;
# the registered exception handler turns them into the error envelope.

class NotFoundError(APIException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(ErrorCode.NOT_FOUND, f"{resource} not found")


class ValidationError(APIException):
    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class BadRequestError(APIException):
    def __init__(self, message: str = "Bad request", details: Any = None):
        super().__init__(ErrorCode.BAD_REQUEST, message, details)


class InvalidTransitionError(BadRequestError):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move notification from '{current}' to '{target}'",
            {"from": current, "to": target},
        )
        self.current = current
        self.target = target


class BulkCreateError(BadRequestError):
    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message, {"index": index} if index is not None else None)


class UnauthorizedError(APIException):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(ErrorCode.UNAUTHORIZED, message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(APIException):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(ErrorCode.FORBIDDEN, message)


class RateLimitedError(APIException):
    def __init__(self, retry_after: Optional[int] = None):
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        super().__init__(ErrorCode.RATE_LIMITED, "Too many requests", {"retryAfter": retry_after}, headers)


def handle_service_error(exc: Exception, context: str = "") -> None:
    """Log a service-level failure and re-raise it.

    Every service funnels unexpected exceptions through here so failures are
    logged once, with the stack in debug mode, before propagating to the
    request layer.
    """
    prefix = f"{context}: " if context else ""
    if isinstance(exc, APIException):
        logger.warning(f"{prefix}{exc.code.value} - {exc.message}")
    elif settings.DEBUG or not settings.is_production:
        logger.error(f"{prefix}{exc}", exc_info=exc)
    else:
        logger.error(f"{prefix}{type(exc).__name__}: {exc}")
    raise exc


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    return error_response(request, exc.code, exc.message, exc.details, headers=exc.headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap plain HTTPExceptions (routing 404/405, etc.) in the error envelope."""
    code = code_for_status(exc.status_code)
    return error_response(request, code, str(exc.detail), status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
    return error_response(request, ErrorCode.VALIDATION_ERROR, "Request validation failed", errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error: {exc}", exc_info=exc)
    return error_response(request, ErrorCode.INTERNAL_ERROR, "Internal server error")
