"""
Error taxonomy for OrderDesk.

Every failure surfaced to callers is one of these exceptions. Each carries the
HTTP status and the ErrorCodes value used when it is rendered by the FastAPI
exception handlers registered in main.py. Nothing here is retried: the
operation that raised is simply rejected.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .responses import ErrorCodes, error_response

logger = logging.getLogger(__name__)


class OrderdeskError(Exception):
    """Base class for all errors rendered with the standard error envelope."""

    status_code: int = 500
    code: str = ErrorCodes.BACKEND_ERROR
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, details: Optional[dict] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidTenantId(OrderdeskError):
    """Tenant identifier is missing or not exactly 8 ASCII digits."""
    status_code = 400
    code = ErrorCodes.INVALID_TENANT_ID
    default_message = "Invalid store_id in session"


class InvalidPayload(OrderdeskError):
    status_code = 422
    code = ErrorCodes.INVALID_PAYLOAD
    default_message = "Invalid payload"


class AuthenticationFailed(OrderdeskError):
    """
    Generic authentication failure.

    The message never says whether the store, the username or the password
    was wrong.
    """
    status_code = 401
    code = ErrorCodes.AUTHENTICATION_FAILED
    default_message = "Invalid credentials"


class AccessDenied(OrderdeskError):
    status_code = 403
    code = ErrorCodes.ACCESS_DENIED
    default_message = "Access denied"


class StoreNotFound(OrderdeskError):
    status_code = 404
    code = ErrorCodes.STORE_NOT_FOUND
    default_message = "Store not found"


class RecordNotFound(OrderdeskError):
    status_code = 404
    code = ErrorCodes.NOT_FOUND
    default_message = "Record not found"


class SlugConflict(OrderdeskError):
    status_code = 409
    code = ErrorCodes.SLUG_CONFLICT
    default_message = "Slug is already in use"


class Conflict(OrderdeskError):
    """The change clashes with existing data: a taken name, a record still in use."""
    status_code = 409
    code = ErrorCodes.CONFLICT
    default_message = "Resource already exists"


class StoreDeactivated(OrderdeskError):
    status_code = 423
    code = ErrorCodes.STORE_DEACTIVATED
    default_message = "This store is deactivated. Please contact the administrator."


class BackendError(OrderdeskError):
    """Opaque database or network failure."""
    status_code = 500
    code = ErrorCodes.BACKEND_ERROR
    default_message = "Backend request failed"


ERRORS_BY_CODE: dict[str, type[OrderdeskError]] = {
    cls.code: cls
    for cls in (
        InvalidTenantId,
        InvalidPayload,
        AuthenticationFailed,
        AccessDenied,
        StoreNotFound,
        RecordNotFound,
        Conflict,
        SlugConflict,
        StoreDeactivated,
        BackendError,
    )
}


async def orderdesk_error_handler(request: Request, exc: OrderdeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationFailed) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_response(ErrorCodes.VALIDATION_ERROR, "Request validation failed", {"errors": errors}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderdeskError, orderdesk_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
