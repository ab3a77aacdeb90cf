"""
Common schemas for API responses and error handling.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Schema for detailed error information."""

    error_code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    suggestions: Optional[List[str]] = Field(None, description="Helpful suggestions for resolving the error")
    retry_after: Optional[int] = None


class ErrorResponse(BaseModel):
    """Schema for API error responses."""

    error: ErrorDetail
    error_id: str
    timestamp: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": {
                        "error_code": "INSUFFICIENT_INVENTORY",
                        "message": "Insufficient seats: requested 3, remaining 2",
                        "details": {"requested": 3, "remaining": 2},
                        "suggestions": ["Try booking fewer seats"]
                    },
                    "error_id": "6f1c2c58-6f8b-4d5e-9d53-0d7f3f1b2a11",
                    "timestamp": "2025-07-01T10:00:00+00:00"
                }
            ]
        }
    }


# OpenAPI entries for the error body returned by the error-handler middleware
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid state transition"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
    409: {"model": ErrorResponse, "description": "Seats or payment state changed"},
}
