from abc import ABC


class UserError(ABC, Exception):
    """Base class for user-related errors.

    All errors that inherit from UserError will have their messages
    displayed to the user. These errors should not contain any
    sensitive information.
    """


class NotFoundError(UserError):
    """Raised when a requested note, tag or queue entry is not found."""

    def __init__(self, message: str = "Note not found") -> None:
        super().__init__(message)


class AuthenticationError(UserError):
    """Raised when the remote API rejects the session token."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class ValidationError(UserError):
    """Raised when user input fails validation."""


class ApiError(Exception):
    """Raised when the remote notes API answers with a non-success status."""

    def __init__(
        self, message: str, status_code: int = 500, code: str | None = None, details: object | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.details = details


class NetworkError(ApiError):
    """Raised when the remote notes API cannot be reached at all."""

    def __init__(self, message: str = "Network error occurred") -> None:
        super().__init__(message, status_code=0)


class StorageError(Exception):
    """Raised when the local key-value storage fails to read or write."""
