"""
Error taxonomy shared by all SafeHER services.

Each error carries the HTTP status it maps to; the service factory turns
them into ``{"detail": message}`` JSON responses.
"""

from fastapi import status


class SafeHerError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SafeHerError):
    """Missing or malformed required field."""

    status_code = status.HTTP_400_BAD_REQUEST


class RouteNotFoundError(ValidationError):
    """The directions service answered but found no route."""


class AuthError(SafeHerError):
    """Missing or invalid credential."""

    status_code = status.HTTP_401_UNAUTHORIZED


class OwnershipError(SafeHerError):
    """Requester does not own the target resource."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(SafeHerError):
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamError(SafeHerError):
    """A store, LLM or directions call failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
