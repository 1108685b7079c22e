"""
RadCatalog Backend - Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for the error scenarios of the catalog mirror.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) turn them into
       `{"success": false, ...}` JSON responses with the matching HTTP status.
Who:   Raised by the upstream client, services and middleware.

Exception Hierarchy:
    RadCatalogError (base)
    ├── ValidationError          → 400 Bad Request (malformed input row or parameter)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict (uniqueness violation on an upsert key)
    ├── UpstreamError            → 502 Bad Gateway (RadReport API failed or sent an unexpected shape)
    │   └── UpstreamTimeoutError → 504 Gateway Timeout
    ├── DatabaseError            → 500 Internal Server Error
    └── RateLimitExceededError   → 429 Too Many Requests

Batch operations (reconcile, refresh, generate) catch these per item and record
`error.message` in their summaries; only orchestration-level failures reach
the HTTP handlers.
"""

from typing import Any, Dict, Optional


class RadCatalogError(Exception):
    """
    Base exception for all RadCatalog application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(RadCatalogError):
    """
    Raised when input fails validation.

    When:    An upstream row is missing a required field or carries a wrong type;
             a request parameter is out of range.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(RadCatalogError):
    """
    Raised when a requested entity does not exist.

    When:    Unknown subspecialty code or template id; the upstream detail
             endpoint answered 404.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(RadCatalogError):
    """
    Raised when an upsert violates a uniqueness constraint.

    When:    Two rows race for the same natural key (`code`, `template_id`).
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "A record with the same key already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamError(RadCatalogError):
    """
    Raised when the RadReport API signals failure.

    When:    Envelope `SUCCESS` flag is false, `DATA` has an unexpected shape,
             the HTTP status is an error, or the connection fails.
    HTTP:    502 Bad Gateway

    `status_code` holds the upstream HTTP status when one was received.
    """

    def __init__(
        self,
        message: str = "The upstream template catalog is unavailable",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["upstream_status"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code


class UpstreamTimeoutError(UpstreamError):
    """
    Raised when an upstream request exceeds its deadline.

    HTTP:    504 Gateway Timeout
    """

    def __init__(
        self,
        message: str = "The upstream template catalog did not respond in time",
        timeout: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if timeout is not None:
            ctx["timeout_seconds"] = timeout
        super().__init__(message=message, context=ctx)
        self.timeout = timeout


class DatabaseError(RadCatalogError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic.
        SQL text and constraint names are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(RadCatalogError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests (with a Retry-After header)
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests from this IP. Please wait {retry_after} seconds before retrying."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
