# errors.py
"""Typed failures raised by the workflow and turned into JSON by main.py."""


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    """Missing or malformed input."""
    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(AppError):
    """Authenticated, but lacking the relationship the operation needs."""
    status_code = 403
    code = "FORBIDDEN"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidState(AppError):
    """The record exists but its current status disallows the transition."""
    status_code = 400
    code = "INVALID_STATE"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"


class StorageError(AppError):
    status_code = 502
    code = "STORAGE_ERROR"
