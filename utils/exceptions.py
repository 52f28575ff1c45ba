"""
Service-level error taxonomy.

Services raise these; api.errors maps them onto the JSON error envelope
using `error` and `status_code`.
"""
from __future__ import annotations


class ServiceError(Exception):
    error = "BAD_REQUEST"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConflictError(ServiceError):
    """Duplicate email, role already (not) present, already verified."""
    error = "CONFLICT"
    status_code = 409


class NotFoundError(ServiceError):
    error = "NOT_FOUND"
    status_code = 404


class ExpiredError(ServiceError):
    """Verification or reset token past its expiry."""
    error = "TOKEN_EXPIRED"
    status_code = 410


class AuthenticationError(ServiceError):
    """Bad credentials, or an unknown/expired/revoked token."""
    error = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(ServiceError):
    """Authenticated identity that is not allowed in (unverified, banned, missing role)."""
    error = "FORBIDDEN"
    status_code = 403


class ValidationError(ServiceError):
    error = "VALIDATION_ERROR"
    status_code = 422
