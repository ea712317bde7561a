import math
import time
from typing import TYPE_CHECKING, Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .core.config import settings
from .utils import utcnow

if TYPE_CHECKING:
    from .exceptions import ErrorCode

EXPOSED_HEADERS = [
    "X-Total-Count",
    "X-Page-Count",
    "X-Current-Page",
    "X-Per-Page",
    "X-Next-Cursor",
    "X-Response-Time",
    "X-Request-ID",
    "X-Error-Code",
    "X-Error-Retryable",
]


def _request_id(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    return getattr(request.state, "request_id", None) or "unknown"


def _response_time_ms(request: Optional[Request]) -> int:
    start = getattr(request.state, "start_time", None) if request is not None else None
    if start is None:
        return 0
    return int((time.perf_counter() - start) * 1000)


def build_meta(request: Optional[Request]) -> dict:
    return {
        "timestamp": utcnow().isoformat() + "Z",
        "requestId": _request_id(request),
        "version": settings.APP_VERSION,
        "responseTime": _response_time_ms(request),
    }


def offset_pagination(total: int, limit: int, offset: int) -> dict:
    pages = math.ceil(total / limit) if limit else 0
    page = offset // limit + 1 if limit else 1
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "hasNext": offset + limit < total,
        "hasPrev": offset > 0,
    }


def success_response(
    request: Optional[Request],
    data: Any,
    status_code: int = 200,
    pagination: Optional[dict] = None,
) -> JSONResponse:
    meta = build_meta(request)
    content = {"success": True, "data": data, "meta": meta}
    headers = {
        "X-Response-Time": f"{meta['responseTime']}ms",
        "X-Request-ID": meta["requestId"],
    }
    if pagination is not None:
        content["pagination"] = pagination
        if "total" in pagination:
            headers.update({
                "X-Total-Count": str(pagination["total"]),
                "X-Page-Count": str(pagination["pages"]),
                "X-Current-Page": str(pagination["page"]),
                "X-Per-Page": str(pagination["limit"]),
            })
        if pagination.get("nextCursor"):
            headers["X-Next-Cursor"] = pagination["nextCursor"]
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content), headers=headers)


def error_response(
    request: Optional[Request],
    code: "ErrorCode",
    message: str,
    details: Any = None,
    status_code: Optional[int] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    meta = build_meta(request)
    content = {
        "success": False,
        "error": {
            "code": code.value,
            "message": message,
            "details": details,
            "retryable": code.retryable,
        },
        "meta": meta,
    }
    out_headers = {
        "X-Error-Code": code.value,
        "X-Error-Retryable": str(code.retryable).lower(),
        "X-Response-Time": f"{meta['responseTime']}ms",
        "X-Request-ID": meta["requestId"],
    }
    if headers:
        out_headers.update(headers)
    return JSONResponse(
        status_code=status_code or code.status_code,
        content=jsonable_encoder(content),
        headers=out_headers,
    )
