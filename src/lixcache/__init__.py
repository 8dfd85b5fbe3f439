"""lixcache -- Python client for the Lix cache server.

Cache calls issued while application code runs are coalesced: every
get/set/delete made during one pass of the asyncio event loop travels to
the server in a single batch request, duplicate reads of one key share one
operation, and :meth:`~LixCache.remember` / :meth:`~LixCache.remember_all`
run at most one fetch-or-compute per key at a time.

Typical usage::

    from lixcache import LixCache

    async with LixCache() as cache:
        user = await cache.remember("user:1", load_user, ttl=300)

The ``lixcache`` console script exposes the same client on the command
line.

Modules:
    app: Typer application and CLI entry point.
    client: The :class:`LixCache` client and its HTTP connection.
    engine: Batch queue, completion handles, and single-flight registry.
    store: Local disk-backed store speaking the server's HTTP API.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"

from lixcache.client import LixCache  # noqa: E402
from lixcache.exceptions import (  # noqa: E402
    ConfigError,
    LixAuthError,
    LixCacheError,
    LixConnectionError,
    LixNotFoundError,
    LixServerError,
    LixStoreError,
    LixTimeoutError,
    LixTypeError,
    ProtocolError,
)
from lixcache.models import ClientConfig, RememberAllResult  # noqa: E402
from lixcache.store import DiskStoreTransport  # noqa: E402

__all__ = [
    "ClientConfig",
    "ConfigError",
    "DiskStoreTransport",
    "LixAuthError",
    "LixCache",
    "LixCacheError",
    "LixConnectionError",
    "LixNotFoundError",
    "LixServerError",
    "LixStoreError",
    "LixTimeoutError",
    "LixTypeError",
    "ProtocolError",
    "RememberAllResult",
    "__version__",
]
