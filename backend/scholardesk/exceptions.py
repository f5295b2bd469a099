"""
Centralized error handling and custom exceptions for the application.

Every failure a caller can trigger maps to one of: not-found, invalid-input,
illegal-transition, forbidden or conflict. Each carries a machine-readable
`reason` in `details` so clients can branch without parsing messages.
"""
import logging
from typing import Optional, Dict, Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base exception class for application-specific errors."""

    def __init__(
        self,
        error_code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def reason(self) -> Optional[str]:
        return self.details.get("reason")


def _with_reason(details: Optional[Dict[str, Any]], reason: Optional[str]) -> Dict[str, Any]:
    merged = dict(details or {})
    if reason:
        merged.setdefault("reason", reason)
    return merged


class ValidationError(AppException):
    """Raised when input validation fails."""
    def __init__(self, message: str, reason: Optional[str] = "INVALID_INPUT", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code="VALIDATION_ERROR",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=_with_reason(details, reason)
        )


class AuthenticationError(AppException):
    """Raised when authentication fails."""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            error_code="AUTHENTICATION_ERROR",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class AuthorizationError(AppException):
    """Raised when user lacks permission."""
    def __init__(self, message: str = "Insufficient permissions", reason: Optional[str] = "FORBIDDEN"):
        super().__init__(
            error_code="AUTHORIZATION_ERROR",
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=_with_reason(None, reason)
        )


class NotFoundError(AppException):
    """Raised when resource is not found."""
    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message += f": {identifier}"
        super().__init__(
            error_code="NOT_FOUND",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "identifier": identifier, "reason": "NOT_FOUND"}
        )


class ConflictError(AppException):
    """Raised when there's a conflict (e.g., duplicate action)."""
    def __init__(self, message: str, reason: Optional[str] = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code="CONFLICT",
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_with_reason(details, reason)
        )


class IllegalTransitionError(AppException):
    """Raised when an operation is not valid for the assignment's current status."""
    def __init__(self, current, target=None, message: Optional[str] = None):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        if message is None:
            if target_value:
                message = f"Cannot move assignment from '{current_value}' to '{target_value}'"
            else:
                message = f"Operation not allowed while assignment is '{current_value}'"
        super().__init__(
            error_code="ILLEGAL_TRANSITION",
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"current_status": current_value, "target_status": target_value, "reason": "ILLEGAL_TRANSITION"}
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application-specific exceptions."""
    logger.warning(
        f"AppException: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": jsonable_encoder(exc.details)
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPException with consistent format."""
    logger.warning(
        f"HTTPException: {exc.status_code} - {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": "HTTP_ERROR",
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request-body/query validation failures in the same envelope."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"reason": "INVALID_INPUT", "errors": jsonable_encoder(exc.errors())}
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions. Internal detail stays in the logs."""
    logger.error(
        f"Unexpected error: {type(exc).__name__}",
        exc_info=exc,
        extra={
            "path": request.url.path,
            "method": request.method
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": {}
        }
    )
