"""Exception hierarchy for lixcache.

All exceptions inherit from :class:`LixCacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`lixcache.exit_codes`.
The CLI entry point in :func:`lixcache.app.main` catches ``LixCacheError``
and exits with the appropriate code.

Inside the coalescing engine these exceptions are what a rejected
completion handle carries: a transport failure rejects every handle of
the batch with the same instance, while a :class:`LixStoreError` only
rejects the one operation the server refused.

Subclass hierarchy::

    LixCacheError (exit 1)
    +-- LixConnectionError  (exit 6)
    +-- LixTimeoutError     (exit 7)
    +-- LixAuthError        (exit 3)
    +-- LixNotFoundError    (exit 4)
    +-- LixServerError      (exit 5)
    +-- LixTypeError        (exit 5)
    +-- LixStoreError       (exit 5)
    +-- ProtocolError       (exit 5)
    +-- ConfigError         (exit 1)
"""

from __future__ import annotations

from typing import Any, Optional

from lixcache.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
    EXIT_TIMEOUT,
)


class LixCacheError(Exception):
    """Base exception for all lixcache errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class LixConnectionError(LixCacheError):
    """Raised when the cache server cannot be reached after all retries."""

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        message = f"Failed to connect to Lix cache server at {url}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class LixTimeoutError(LixCacheError):
    """Raised when a request exceeds the configured timeout."""

    exit_code = EXIT_TIMEOUT

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request timed out after {timeout}s")


class LixAuthError(LixCacheError):
    """Raised when the server answers HTTP 401."""

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str = "Authentication failed: invalid or missing API key"):
        super().__init__(message)


class LixNotFoundError(LixCacheError):
    """Raised when a key is required to exist but does not.

    Plain reads never raise this -- a missing key reads as ``None``.
    """

    exit_code = EXIT_NOT_FOUND

    def __init__(self, key: str):
        self.key = key
        super().__init__(f'Key "{key}" not found in cache')


class LixServerError(LixCacheError):
    """Raised when the server returns an unexpected error response."""

    exit_code = EXIT_SERVER_ERROR

    def __init__(self, status_code: int, response: Any = None):
        self.status_code = status_code
        self.response = response
        message = f"Server error ({status_code})"
        if response:
            message = f"{message}: {response}"
        super().__init__(message)


class LixTypeError(LixCacheError):
    """Raised when ``incr``/``decr`` targets a non-numeric value."""

    exit_code = EXIT_SERVER_ERROR

    def __init__(self, key: str, operation: str):
        self.key = key
        self.operation = operation
        verb = "increment" if operation == "incr" else "decrement"
        super().__init__(
            f'Cannot {verb} key "{key}" because it contains a non-numeric value'
        )


class LixStoreError(LixCacheError):
    """Raised for a single operation the store refused inside a successful batch.

    Only the handle of the refused operation is rejected; the other
    operations of the same batch settle normally.
    """

    exit_code = EXIT_SERVER_ERROR

    def __init__(self, op: str, key: str, reason: Any):
        self.op = op
        self.key = key
        self.reason = reason
        super().__init__(f'Store refused {op} "{key}": {reason}')


class ProtocolError(LixCacheError):
    """Raised when a batch response cannot be matched to its request."""

    exit_code = EXIT_SERVER_ERROR


class ConfigError(LixCacheError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
