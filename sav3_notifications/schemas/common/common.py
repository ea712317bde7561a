# sav3_notifications/schemas/common/common.py
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Optional


class CamelModel(BaseModel):
    """Base for API payloads: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None
    retryable: bool = False


class ResponseMeta(BaseModel):
    timestamp: str
    requestId: str
    version: str
    responseTime: int = 0


class Envelope(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    meta: ResponseMeta
    pagination: Optional[dict] = None


class SuccessMessage(CamelModel):
    success: bool = True
    message: Optional[str] = None


class CountResponse(CamelModel):
    total: int = Field(ge=0)
    unread: int = Field(ge=0)
