"""
Standardized API Response Module

Provides consistent response formatting across all API endpoints.

RESPONSE FORMAT:
    Success (simple acknowledgements such as deletes):
        {
            "data": <response data>,
            "status": "success"
        }

    Error:
        {
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "details": {...}  # Optional extra context
            },
            "status": "error"
        }

Most read/write endpoints return their resource model directly; only
acknowledgements and errors use the envelope.
"""

from typing import Any, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes for API responses."""

    # Authentication errors (401)
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"

    # Authorization errors (403)
    ACCESS_DENIED = "ACCESS_DENIED"

    # Tenant errors
    INVALID_TENANT_ID = "INVALID_TENANT_ID"
    STORE_NOT_FOUND = "STORE_NOT_FOUND"
    STORE_DEACTIVATED = "STORE_DEACTIVATED"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"

    # Validation errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"

    # Conflict errors (409)
    CONFLICT = "CONFLICT"
    SLUG_CONFLICT = "SLUG_CONFLICT"

    # Server errors (500)
    BACKEND_ERROR = "BACKEND_ERROR"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def success_response(data: Any) -> dict:
    """
    Create a standardized success response dict.

    Use this for simple responses where Pydantic model isn't needed.
    """
    return {"data": data, "status": "success"}


def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """Create a standardized error response dict."""
    response = {
        "error": ErrorDetail(code=code, message=message).model_dump(exclude_none=True),
        "status": "error",
    }
    if details:
        response["error"]["details"] = details
    return response
