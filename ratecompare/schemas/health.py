"""Health check schemas."""

from typing import Dict

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """Health check response schema."""

    status: str
    version: str
    cache: str
    services: Dict[str, str] = {}
