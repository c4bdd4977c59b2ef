"""Error types shared by API handlers."""

from __future__ import annotations

from typing import Any, Dict, Mapping


class ApiError(Exception):
    """Base error carrying the HTTP status and envelope fields for a failed request."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.error = error
        self.extra = dict(extra or {})

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "message": self.message}
        if self.error:
            payload["error"] = self.error
        payload.update(self.extra)
        return payload


class ValidationError(ApiError, ValueError):
    """Raised when a request is missing fields or carries invalid values."""

    status_code = 400


class AuthenticationError(ApiError):
    """Raised when credentials or bearer tokens are missing or rejected."""

    status_code = 401


class ForbiddenError(ApiError):
    status_code = 403


class NotFoundError(ApiError, LookupError):
    """Raised when a referenced record does not exist."""

    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class PayloadTooLargeError(ApiError):
    """Raised when an upload exceeds the configured size limits."""

    status_code = 413


class ConfigurationError(RuntimeError):
    """Raised when a required environment setting is absent."""
