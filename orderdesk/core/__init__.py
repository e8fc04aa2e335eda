"""
Core module - configuration, database, errors and response formatting.

Request identity lives in core.request_context and is imported from there
directly (it depends on the models and the tenancy package).
"""
from .config import get_settings
from .db import get_session, Base, engine, AsyncSessionLocal
from .errors import (
    OrderdeskError,
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
    register_exception_handlers,
)
from .responses import (
    ErrorDetail,
    ErrorCodes,
    success_response,
    error_response,
)

__all__ = [
    # Config
    "get_settings",
    # Database
    "get_session",
    "Base",
    "engine",
    "AsyncSessionLocal",
    # Errors
    "OrderdeskError",
    "InvalidTenantId",
    "InvalidPayload",
    "AuthenticationFailed",
    "AccessDenied",
    "StoreNotFound",
    "RecordNotFound",
    "Conflict",
    "SlugConflict",
    "StoreDeactivated",
    "BackendError",
    "register_exception_handlers",
    # Responses
    "ErrorDetail",
    "ErrorCodes",
    "success_response",
    "error_response",
]
