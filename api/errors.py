"""
Domain error taxonomy. Every failure that crosses the HTTP boundary carries a stable
machine-readable code and a human-readable message.
"""

from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        # server-side details stay in the logs
        if self.details and self.status_code < 500:
            body["details"] = self.details
        return body


class AuthenticationError(DomainError):
    code = "AUTH_REQUIRED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(DomainError):
    code = "ACCESS_DENIED"
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} with id {resource_id} not found" if resource_id else f"{resource} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(DomainError):
    code = "CONFLICT"
    status_code = 409


class _WrappedError(DomainError):
    """Base for errors that wrap an infrastructure exception with operation context."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        details = {"original_error": str(original)} if original is not None else None
        super().__init__(message, details=details)
        self.original = original


class RepositoryError(_WrappedError):
    code = "REPOSITORY_ERROR"


class SearchError(_WrappedError):
    code = "VECTOR_SERVICE_ERROR"


class GenerationError(_WrappedError):
    code = "AI_SERVICE_ERROR"


def error_body(exc: BaseException) -> dict[str, Any]:
    """Response body for any exception; unknown ones never leak their text."""
    if isinstance(exc, DomainError):
        return {"success": False, "error": exc.to_dict()}
    return {
        "success": False,
        "error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
    }
