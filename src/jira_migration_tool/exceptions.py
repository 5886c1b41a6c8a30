"""
Custom exception classes for the Jira migration tool.
"""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import requests


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised when required configuration is missing or malformed."""


class ConnectionCheckError(MigrationError):
    """Raised when the source or destination is unreachable or rejects the credentials."""


class NotFoundError(MigrationError):
    """Raised when a source issue or destination record does not exist."""


class ParentValidationError(MigrationError):
    """Raised when an explicitly requested parent task cannot be used."""


class SubResourceError(MigrationError):
    """Raised when a single attachment or comment cannot be synchronized."""


class ApiError(MigrationError):
    """Raised for any other HTTP failure from one of the platforms."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code: int | None = status_code


class RateLimitError(ApiError):
    """Raised when the destination keeps rate limiting us or asks us to wait too long."""

    def __init__(self, message: str, wait_until: dt.datetime | None = None) -> None:
        super().__init__(message, status_code=429)
        self.wait_until: dt.datetime | None = wait_until


def error_message_from_response(response: requests.Response) -> str:
    """Extract the platform's own error message from an HTTP error response, if any."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "err", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
        messages = data.get("errorMessages")
        if isinstance(messages, list) and messages:
            return "; ".join(str(m) for m in messages)
        errors = data.get("errors")
        if isinstance(errors, dict) and errors:
            return "; ".join(f"{k}: {v}" for k, v in errors.items())
    return f"HTTP {response.status_code} {response.reason or ''}".strip()


def api_error(response: requests.Response, action: str) -> ApiError:
    """Build an ApiError for a failed request, e.g. ``api_error(resp, "create ClickUp task")``."""
    return ApiError(f"Failed to {action}: {error_message_from_response(response)}", status_code=response.status_code)
