"""Client module for lixcache.

Classes:
    :class:`LixCache` -- the application-facing async client with
        automatic batching, read collapsing, ``remember`` and
        ``remember_all``.
    :class:`StoreConnection` -- the :mod:`httpx` transport with retry and
        error mapping used by :class:`LixCache`.

Example::

    from lixcache.client import LixCache

    async with LixCache() as cache:
        user = await cache.get("user:1")
"""

from lixcache.client.client import LixCache, list_marker_key
from lixcache.client.http import StoreConnection

__all__ = ["LixCache", "StoreConnection", "list_marker_key"]
