from __future__ import annotations

from pydantic import BaseModel, Field

NOT_FOUND_MESSAGE = "404: This page could not be found"


class HealthResponse(BaseModel):
    healthy: str = Field("true", description="Always the string 'true' while the process serves")


class GreetingResponse(BaseModel):
    Hello: str = "World"


class RateResponse(BaseModel):
    rate: float = Field(..., description="Currently stored error rate")


class StatusResponse(BaseModel):
    status: str = "success"


class NotFoundResponse(BaseModel):
    error: str = NOT_FOUND_MESSAGE
