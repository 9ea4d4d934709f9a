"""
Keystone — Custom Exception Hierarchy
======================================

What:  Application-specific exceptions for configuration and request errors.
How:   Each exception carries a user-facing message and an optional context
       dict. Global exception handlers (registered in main.py) map them to
       HTTP status codes and structured JSON bodies.
Who:   Raised by the environment accessor, the config registry, the HTTP
       adapter and middleware.

Exception Hierarchy:
    KeystoneError (base)
    ├── ConfigurationError       → fatal at startup (never reaches HTTP)
    ├── PayloadTooLargeError     → 413 Payload Too Large
    └── RateLimitExceededError   → 429 Too Many Requests (built by RateLimitMiddleware)
"""

from typing import Any, Dict, Optional


class KeystoneError(Exception):
    """
    Base exception for all Keystone application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where noted)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(KeystoneError):
    """
    Raised when an environment value cannot be coerced or a section is invalid.

    When:    Startup only: configuration must be valid before the server binds.
    Attributes:
        key:    Environment variable (or dotted section path) that failed
        value:  Raw string that could not be coerced, if any
    """

    def __init__(
        self,
        message: str = "Invalid configuration",
        key: Optional[str] = None,
        value: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if key:
            ctx["key"] = key
        if value is not None:
            ctx["value"] = value
        super().__init__(message=message, context=ctx)
        self.key = key
        self.value = value


class PayloadTooLargeError(KeystoneError):
    """
    Raised when a multipart upload exceeds one of the adapter limits.

    When:    Too many files, too many fields, or a file larger than the cap.
    HTTP:    413 Payload Too Large
    """

    def __init__(
        self,
        message: str = "Request payload is too large",
        limit: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if limit:
            ctx["limit"] = limit
        super().__init__(message=message, context=ctx)
        self.limit = limit


class RateLimitExceededError(KeystoneError):
    """
    Raised when a client exceeds the fixed-window request limit.

    HTTP:    429 Too Many Requests

    Response includes:
        - retry_after: Seconds until the client's window resets
        - Retry-After header for HTTP-compliant clients
    """

    def __init__(
        self,
        retry_after: int = 10,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = (
                f"Rate limit exceeded. Please wait {retry_after} seconds "
                f"before making more requests."
            )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
