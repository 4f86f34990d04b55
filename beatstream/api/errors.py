"""
Error taxonomy for the API.

Every error that leaves a handler is rendered as:
    {"error": "<message>", "details": <optional>}

Handlers raise these exceptions; `main.py` registers the FastAPI exception
handlers that convert them (and framework errors) into JSON responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status


class ApiError(Exception):
    """Base class for errors rendered as `{error, details?}` responses."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error."

    def __init__(self, message: Optional[str] = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    # PUBLIC_INTERFACE
    def to_body(self) -> Dict[str, Any]:
        """Return the JSON body for this error."""
        return error_body(self.message, self.details)


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request."


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated."


class AuthorizationError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed."


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists."


class UpstreamError(ApiError):
    """Failure reported by an identity, storage, metadata or AI provider."""

    default_message = "Upstream service failed."


class UpstreamResolutionError(UpstreamError):
    """The downloader API did not resolve the source URL."""

    default_message = "Failed to resolve the audio source."


class BinaryFetchError(UpstreamError):
    """The resolved audio URL could not be downloaded."""

    default_message = "Failed to download the audio file."


class PersistenceError(ApiError):
    default_message = "Database operation failed."


# PUBLIC_INTERFACE
def error_body(message: str, details: Any = None) -> Dict[str, Any]:
    """Build the error response body; `details` is omitted when None."""
    body: Dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    return body
