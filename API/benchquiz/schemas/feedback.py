from typing import Literal

from pydantic import BaseModel


class FeedbackResponse(BaseModel):
    success: Literal[True] = True
    message: str


class HealthCheckResponse(BaseModel):
    status: Literal["ok", "error"]
    timestamp: int
    version: str | None = None
