"""
Service error taxonomy.

Every error raised by the lifecycle and user services derives from
ServiceError and carries the HTTP status it maps to. The FastAPI service
factory renders them as ``{"message": ...}`` JSON bodies.
"""

from typing import Optional


class ServiceError(Exception):
    """Base class for errors that are reported to API callers."""

    status_code: int = 500
    default_message: str = "Server Error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Missing or malformed input (required field, file, value range)."""

    status_code = 400
    default_message = "Invalid request"


class InvalidStateError(ValidationError):
    """The complaint's current status does not allow the requested operation."""

    default_message = "Operation not allowed in the complaint's current state"


class AuthenticationError(ServiceError):
    status_code = 401
    default_message = "Not authorized"


class AuthorizationError(ServiceError):
    status_code = 403
    default_message = "Not authorized for this operation"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError):
    """Another request modified the same record first."""

    status_code = 409
    default_message = "The record was modified by another request, please retry"


class DependencyError(ServiceError):
    """Record store or blob store failure."""

    status_code = 500
    default_message = "A backing service failed"
