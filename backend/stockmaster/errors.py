# Overview: Application exception taxonomy and JSON error handlers.

from __future__ import annotations

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"status": "error", "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """400-level input problem."""
    status_code = 400


class ConflictError(AppError):
    """
    Business rule conflict: duplicate SKU or category name, insufficient stock,
    delete with dependents.

    Reported as 400 to match the public API contract.
    """
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class AuditLogImmutableError(AppError):
    """Raised on any attempt to modify or delete a persisted audit entry."""
    status_code = 403

    def __init__(self, message: str = "Audit logs cannot be modified or deleted"):
        super().__init__(message)


class RateLimitError(AppError):
    status_code = 429

    def __init__(self, message: str = "Too many attempts. Please try again later.", retry_after: int | None = None):
        super().__init__(message, details={"retry_after_seconds": retry_after} if retry_after else None)
        self.retry_after = retry_after


def register_error_handlers(app) -> None:
    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if isinstance(error, RateLimitError) and error.retry_after:
            response.headers["Retry-After"] = str(error.retry_after)
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        response = jsonify({"status": "error", "message": error.description or error.name})
        response.status_code = error.code or 500
        return response

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        current_app.logger.exception("Unhandled error")
        response = jsonify({"status": "error", "message": "Internal server error"})
        response.status_code = 500
        return response
