"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~lixcache.exceptions.LixCacheError` subclass.
Shell scripts wrapping the ``lixcache`` command can inspect the exit code
to tell an unreachable server apart from a missing key.

Example::

    $ lixcache get session:abc
    $ echo $?
    4   # EXIT_NOT_FOUND -- the key is not cached
"""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The cache server rejected the request (HTTP 401)."""

EXIT_NOT_FOUND = 4
"""The requested key is not cached."""

EXIT_SERVER_ERROR = 5
"""The cache server returned an error response."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (DNS failure, connection refused)."""

EXIT_TIMEOUT = 7
"""The cache server did not answer within the configured timeout."""
