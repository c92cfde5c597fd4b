"""Health check schemas."""

from pydantic import BaseModel, Field


class RootResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str


class ReadyResponse(BaseModel):
    status: str
    dependencies: dict[str, bool] = Field(default_factory=dict)
    observers: int = 0
