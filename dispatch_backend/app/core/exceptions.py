"""
Custom exceptions and error handlers for consistent error responses.

Every business-rule failure raised by the ride workflow maps to one error
kind (Forbidden, NotFound, Conflict, InvalidTransition, ValidationError).
Storage outages are reported separately so callers know they may retry.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from typing import Any, Dict

logger = logging.getLogger("dispatch.errors")


class AppException(Exception):
    """Base application exception."""

    kind = "Internal"

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    kind = "Forbidden"

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found (or not visible to the actor)."""

    kind = "NotFound"

    def __init__(self, resource: str, resource_id: Any = None, message: str = None):
        if message is None:
            message = f"{resource} not found"
            if resource_id:
                message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ConflictError(AppException):
    """Raised when an operation would break an invariant or lost a race."""

    kind = "Conflict"

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidTransitionError(AppException):
    """Raised when a ride status change is not a legal lifecycle step."""

    kind = "InvalidTransition"

    def __init__(self, current_status: str, requested_status: str, message: str = None):
        super().__init__(
            message=message or f"Cannot move ride from {current_status} to {requested_status}",
            error_code="ERR_TRANSITION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"current_status": current_status, "requested_status": requested_status}
        )


class BusinessValidationError(AppException):
    """Raised for well-typed input that is still malformed (e.g. inverted windows)."""

    kind = "ValidationError"

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    kind = "Unauthorized"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class TokenRevokedError(AppException):
    """Raised when token has been revoked."""

    kind = "Unauthorized"

    def __init__(self):
        super().__init__(
            message="Token has been revoked",
            error_code="ERR_AUTH_002",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "kind": exc.kind,
            "message": exc.message,
            "details": exc.details
        },
        headers=headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: ("ERR_BAD_REQUEST", "ValidationError"),
        401: ("ERR_UNAUTHORIZED", "Unauthorized"),
        403: ("ERR_FORBIDDEN", "Forbidden"),
        404: ("ERR_NOT_FOUND", "NotFound"),
        409: ("ERR_CONFLICT", "Conflict"),
        500: ("ERR_INTERNAL_SERVER", "Internal")
    }

    error_code, kind = error_code_map.get(exc.status_code, ("ERR_UNKNOWN", "Internal"))

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "kind": kind,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "kind": "ValidationError",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Strip non-serializable context (e.g. exception objects) from pydantic errors."""
    cleaned = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        error.pop("input", None)
        cleaned.append(error)
    return cleaned


async def storage_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for database connectivity/timeouts; safe for the caller to retry."""
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error_code": "ERR_STORAGE_UNAVAILABLE",
            "kind": "Internal",
            "message": "Storage is temporarily unavailable, please retry",
            "details": {"retryable": True}
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "kind": "Internal",
            "message": "An internal server error occurred",
            "details": {}
        }
    )


# Connectivity and timeout failures only; IntegrityError is a business conflict handled by services.
STORAGE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)
