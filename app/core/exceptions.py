"""
Error taxonomy for the claim portal.

Services raise these; the handlers in app.core.error_handlers turn them
into the JSON error envelope. The client in app.client maps HTTP errors
back onto the same classes.
"""

from typing import Optional

from fastapi import status

INVALID_LINK_MESSAGE = "Query link is invalid or has expired"


class PortalError(Exception):
    """Base exception for all application errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "PORTAL_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


class ValidationError(PortalError):
    """Missing or malformed input: empty subject/message, bad enum, bad file."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            error_code=f"VALIDATION_ERROR_{field.upper()}" if field else None,
        )
        self.field = field


class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    @classmethod
    def for_resource(cls, resource_type: str, resource_id) -> "NotFoundError":
        return cls(f"{resource_type} with ID '{resource_id}' not found")


class TokenExpiredError(PortalError):
    """Public link past its expiry. Rendered exactly like an unknown link."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, message: str = INVALID_LINK_MESSAGE):
        super().__init__(message)


class InvalidStateError(PortalError):
    """Action not allowed in the current status of a query or claim."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "INVALID_STATE"


class AuthenticationError(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTH_ERROR"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class PermissionDeniedError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


# Client-side only


class NetworkError(PortalError):
    """The request never got a response (connection refused, timeout, DNS)."""

    status_code = 0
    error_code = "NETWORK_ERROR"


class ApiError(PortalError):
    """Any other non-2xx response the client cannot classify."""

    def __init__(self, message: str, status_code: int, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code)
        self.status_code = status_code
