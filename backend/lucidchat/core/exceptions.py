"""Application error taxonomy.

Every error carries the HTTP status it maps to; the API layer renders them
as ``{"detail": message}``. Parse failures are not part of this hierarchy:
they are recovered where they happen.
"""


class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppError):
    """Missing room, character or user."""

    status_code = 404


class BadRequestError(AppError):
    """Invalid ending type, invalid mode, and similar caller mistakes."""

    status_code = 400


class InsufficientEnergyError(AppError):
    status_code = 402


class ExternalServiceError(AppError):
    """Generation or embedding backend failed after retries were exhausted."""

    status_code = 502
