"""
auth/errors.py -- Error taxonomy for the auth service.

Every failure the service can report is one of these classes. Each carries a
machine-readable code and the HTTP status it maps to; api/main.py registers a
single exception handler that turns them into the JSON error envelope.

Messages are safe to return to clients. Internal detail (SQL text, provider
responses, stack traces) belongs in the log, never in the message.

Layer rule: no imports from api/ or fastapi.
"""

from __future__ import annotations


class AuthServiceError(Exception):
    """Base class. Subclasses set code and status_code."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class AuthenticationError(AuthServiceError):
    """Bad credentials, or a missing/malformed/invalid/expired token."""

    code = "unauthorized"
    status_code = 401


class AuthorizationError(AuthServiceError):
    """Valid credential that lacks the required permission."""

    code = "forbidden"
    status_code = 403


class ValidationError(AuthServiceError):
    """Malformed request body or an invalid enumerated value."""

    code = "validation_error"
    status_code = 400


class NotFoundError(AuthServiceError):
    code = "not_found"
    status_code = 404


class ConflictError(AuthServiceError):
    code = "conflict"
    status_code = 409


class InternalError(AuthServiceError):
    """Unexpected store or signing failure."""

    code = "internal_error"
    status_code = 500
