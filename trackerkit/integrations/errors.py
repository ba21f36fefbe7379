"""Error taxonomy for tracker API operations.

This module defines the exception hierarchy raised by the client layer:
- TrackerError: Base exception for all client failures
- NetworkError: Connection, DNS or timeout failure (transient)
- HttpError: Remote rejected the request with a non-2xx status
- DecodeError: Response body was not valid JSON
- SchemaError: Valid JSON that does not match the expected shape
- Cancelled: Caller aborted the operation through a cancellation token

Configuration exceptions:
- CredentialValidationError: Missing or invalid credential values
- NotConfiguredError: Client used before a base URL/credentials were supplied
"""

from __future__ import annotations

from typing import Any

MAX_ERROR_BODY_LENGTH = 200

HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def truncate_body(body: Any, max_length: int = MAX_ERROR_BODY_LENGTH) -> str:
    """Render an error body as a single bounded line for messages and logs."""
    text = body if isinstance(body, str) else repr(body)
    text = " ".join(text.split())
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


class TrackerError(Exception):
    """Base exception for tracker client failures.

    All client exceptions inherit from this class, enabling catch-all
    error handling when needed.
    """

    pass


# ============================================================================
# Transport exceptions
# ============================================================================


class NetworkError(TrackerError):
    """Raised on connection, DNS or timeout failures.

    These are transient; a higher layer may safely retry.

    Attributes:
        method: HTTP method of the failed request
        path: Request path
        original_error: The underlying httpx exception, if any
    """

    def __init__(
        self,
        method: str,
        path: str,
        original_error: Exception | None = None,
        message: str | None = None,
    ) -> None:
        self.method = method
        self.path = path
        self.original_error = original_error
        if message is None:
            message = f"Network error during {method} {path}"
            if original_error is not None:
                message += f": {type(original_error).__name__}: {original_error}"
        super().__init__(message)


class HttpError(TrackerError):
    """Raised when the remote returns a non-2xx status.

    Attributes:
        status_code: HTTP status code
        body: Parsed JSON error body when decodable, otherwise raw text
        method: HTTP method of the failed request
        path: Request path
    """

    def __init__(
        self,
        status_code: int,
        body: Any = None,
        method: str = "",
        path: str = "",
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.method = method
        self.path = path
        if message is None:
            message = f"HTTP {status_code}"
            if method or path:
                message += f" for {method} {path}".rstrip()
            detail = self.error_messages()
            if detail:
                message += f": {truncate_body('; '.join(detail))}"
            elif body:
                message += f": {truncate_body(body)}"
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == HTTP_NOT_FOUND

    @property
    def is_retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)

    def error_messages(self) -> list[str]:
        """Extract messages from the platform's standard error body.

        The remote reports failures as ``{"errorMessages": [...],
        "errors": {field: message}}``.
        """
        if not isinstance(self.body, dict):
            return []
        messages = [str(m) for m in self.body.get("errorMessages") or []]
        errors = self.body.get("errors") or {}
        if isinstance(errors, dict):
            messages.extend(f"{field}: {msg}" for field, msg in errors.items())
        return messages


class DecodeError(TrackerError):
    """Raised when a successful response body is not valid JSON.

    Attributes:
        path: Request path
        body_preview: Truncated start of the undecodable body
    """

    def __init__(self, path: str, body_preview: str = "", message: str | None = None) -> None:
        self.path = path
        self.body_preview = truncate_body(body_preview)
        if message is None:
            message = f"Response from {path} is not valid JSON"
            if self.body_preview:
                message += f": {self.body_preview}"
        super().__init__(message)


class SchemaError(TrackerError):
    """Raised when a decoded body does not match the expected shape.

    A SchemaError is a data-contract violation; the offending payload is
    never coerced into a partial object.

    Attributes:
        schema_id: Name of the shape that failed
        path: Dotted path to the offending field ("" for the root)
        reason: Validator message for that field
    """

    def __init__(
        self,
        schema_id: str,
        path: str,
        reason: str = "",
        message: str | None = None,
    ) -> None:
        self.schema_id = schema_id
        self.path = path
        self.reason = reason
        if message is None:
            location = path or "<root>"
            message = f"{schema_id} failed validation at {location}"
            if reason:
                message += f": {reason}"
        super().__init__(message)


class Cancelled(TrackerError):
    """Raised when a caller-supplied cancellation token aborts a request.

    Attributes:
        method: HTTP method of the aborted request
        path: Request path
    """

    def __init__(self, method: str = "", path: str = "", message: str | None = None) -> None:
        self.method = method
        self.path = path
        if message is None:
            message = f"Request cancelled: {method} {path}".rstrip()
        super().__init__(message)


# ============================================================================
# Configuration exceptions
# ============================================================================


class CredentialValidationError(TrackerError):
    """Raised when credentials are missing required values.

    Attributes:
        scheme: Authentication scheme being configured
        missing_keys: Set of credential keys that are missing
    """

    def __init__(
        self,
        scheme: str,
        missing_keys: set[str] | frozenset[str],
        message: str | None = None,
    ) -> None:
        self.scheme = scheme
        self.missing_keys = missing_keys
        if message is None:
            message = f"{scheme} authentication missing required credentials: {sorted(missing_keys)}"
        super().__init__(message)


class NotConfiguredError(TrackerError):
    """Raised when the client has no usable base URL or credentials."""

    pass


__all__ = [
    "HTTP_NOT_FOUND",
    "HTTP_TOO_MANY_REQUESTS",
    "MAX_ERROR_BODY_LENGTH",
    "RETRYABLE_STATUS_CODES",
    "Cancelled",
    "CredentialValidationError",
    "DecodeError",
    "HttpError",
    "NetworkError",
    "NotConfiguredError",
    "SchemaError",
    "TrackerError",
    "truncate_body",
]
