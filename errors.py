"""Application error taxonomy.

Each error carries the HTTP status it is reported with. The handlers in
``main.py`` turn them into ``{"error": message}`` responses.
"""


class AppError(Exception):
    """Base exception for all StreetUp errors."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", status_code: int = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised for missing or malformed input."""

    status_code = 400


class AuthError(AppError):
    """Raised when a token is missing, invalid or expired, or credentials don't match."""

    status_code = 401


class NotFoundError(AppError):
    """Raised when a referenced document does not exist."""

    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")


class ConflictError(AppError):
    """Raised on duplicate emails and duplicate votes."""

    status_code = 409


class InternalError(AppError):
    """Raised for misconfiguration or unexpected faults."""

    status_code = 500
