"""Local cache store backends.

This package provides :class:`DiskStoreTransport`, which answers the Lix
cache HTTP API from a local :mod:`diskcache` directory so that
:class:`~lixcache.client.LixCache` can run without a server.
"""

from lixcache.store.disk import DiskStoreTransport

__all__ = ["DiskStoreTransport"]
