"""Error taxonomy for the authorization kernel and its callers.

Every error carries the HTTP status a transport should answer with; the
FastAPI app translates them in a single exception handler.
"""

from fastapi import status


class ElectionBackendError(Exception):
    """Base exception for the elections backend."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class Unauthenticated(ElectionBackendError):
    """Raised when no valid principal can be resolved from the request."""
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(ElectionBackendError):
    """Raised when an authorization decision is Deny."""
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions", reason: str = "insufficient_permission"):
        self.reason = reason
        super().__init__(message)


class InvalidScope(ElectionBackendError):
    """Raised when a privileged actor omits the explicit scope an action needs."""
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(ElectionBackendError):
    """Raised when input validation fails."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(ElectionBackendError):
    """Raised when a target role, user or resource does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ElectionBackendError):
    """Raised when a resource already exists (e.g. duplicate role name)."""
    status_code = status.HTTP_409_CONFLICT


class InternalInconsistency(ElectionBackendError):
    """Raised when stored data contradicts a write (e.g. unknown permission id)."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
