"""Common Pydantic schemas used across the API."""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response envelope."""

    status: str = "success"
    data: T


class ErrorDetail(BaseModel):
    """Error detail for error responses."""

    code: str
    message: str
    field: Optional[str] = None
    context: Dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Standard API error response."""

    status: str = "error"
    error: ErrorDetail
