"""
Service-layer errors. Each subclass pins an error code and HTTP status; the
handlers registered in app.main render them as
{"success": false, "error": {"code", "message", "details"}}.
"""

from typing import Any, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        *,
        details: Optional[Any] = None,
        headers: Optional[dict] = None,
    ) -> None:
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)
        self.details = details
        self.headers = headers


class ValidationFailedError(ServiceError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid input data"


class ResourceNotFoundError(ServiceError):
    code = "RESOURCE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class DuplicateResourceError(ServiceError):
    code = "DUPLICATE_RESOURCE"
    status_code = status.HTTP_409_CONFLICT
    message = "Resource already exists"


class ResourceInUseError(ServiceError):
    code = "RESOURCE_IN_USE"
    status_code = status.HTTP_409_CONFLICT
    message = "Resource is still referenced and cannot be deleted"


class MainTagMismatchError(ServiceError):
    code = "MAIN_TAG_MISMATCH"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Main tag does not match the pump"


class InvalidCredentialsError(ServiceError):
    code = "INVALID_CREDENTIALS"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid username or password"


class InvalidTokenError(ServiceError):
    code = "INVALID_TOKEN"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or expired token"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class InsufficientPermissionsError(ServiceError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = status.HTTP_403_FORBIDDEN
    message = "Admin role required"


class RateLimitExceededError(ServiceError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int) -> None:
        super().__init__(headers={"Retry-After": str(retry_after)})


# Used when a framework HTTPException reaches the handler without a code of its own.
STATUS_CODE_TO_ERROR_CODE = {
    status.HTTP_400_BAD_REQUEST: ValidationFailedError.code,
    status.HTTP_401_UNAUTHORIZED: InvalidTokenError.code,
    status.HTTP_403_FORBIDDEN: InsufficientPermissionsError.code,
    status.HTTP_404_NOT_FOUND: ResourceNotFoundError.code,
    status.HTTP_409_CONFLICT: DuplicateResourceError.code,
    status.HTTP_429_TOO_MANY_REQUESTS: RateLimitExceededError.code,
}
