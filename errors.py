"""
Domain exceptions for the ordering backend.

Each exception carries its HTTP status code so FastAPI renders it directly.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(DomainError):
    """Rejected input (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class PermissionDeniedError(DomainError):
    """Caller may not act on this resource (403)."""
    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class ConcurrencyConflict(ConflictError):
    """The order changed since it was read; re-read and retry."""
    def __init__(self, order_id: str, expected_version: int | None = None):
        super().__init__(
            f"Order {order_id} was modified concurrently, retry the update",
            details={"order_id": order_id, "expected_version": expected_version},
        )


class DuplicateOrderIdError(ConflictError):
    def __init__(self, order_id: str):
        super().__init__(f"Order id already exists: {order_id}", details={"order_id": order_id})


class PersistenceError(DomainError):
    """Datastore unavailable or the write failed (503)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)
