"""Common schemas: enums and error responses."""

from enum import StrEnum

from pydantic import BaseModel


class Platform(StrEnum):
    AMAZON = "amazon"
    FLIPKART = "flipkart"
    UNSUPPORTED = "unsupported"


class NotificationType(StrEnum):
    AGENT = "agent"
    ERROR = "error"


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str | None = None
