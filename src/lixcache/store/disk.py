"""Local disk-backed cache store speaking the Lix HTTP API.

:class:`DiskStoreTransport` is an :class:`httpx.AsyncBaseTransport` that
answers the Lix cache server's routes from a :mod:`diskcache` directory
instead of the network. Plugging it into
:class:`~lixcache.client.LixCache` gives a fully working client, with
per-key expiry, prefix scans and atomic counters, without running a
server::

    from lixcache import LixCache
    from lixcache.store import DiskStoreTransport

    async with LixCache(transport=DiskStoreTransport("/tmp/lix")) as cache:
        await cache.set("greeting", "hello", ttl=60)

Batch operations are applied in the order received. Values are stored as
the JSON-decoded request payloads, so everything read back is plain JSON
data.

Requests are answered with blocking :mod:`diskcache` calls made directly
on the event loop. Each call is a short local SQLite transaction, which
suits development and tests; the store is not meant to serve concurrent
production load.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Optional

import diskcache
import httpx

_MISSING = object()

Route = Callable[[httpx.Request, Any], tuple[int, Any]]


class DiskStoreTransport(httpx.AsyncBaseTransport):
    """Serve Lix cache requests from a :class:`diskcache.Cache` directory.

    Args:
        directory: Cache directory; created if missing.
        limit: Item limit reported by ``/cache/stats``.
    """

    def __init__(self, directory: str | Path, limit: int = 100_000) -> None:
        self._directory = Path(directory)
        self._limit = limit
        self._cache = diskcache.Cache(str(self._directory))
        self._cache.stats(enable=True)
        self._routes: dict[tuple[str, str], Route] = {
            ("POST", "/cache/set"): self._route_set,
            ("GET", "/cache/get"): self._route_get,
            ("DELETE", "/cache/delete"): self._route_delete,
            ("POST", "/cache/incr"): self._route_incr,
            ("POST", "/cache/decr"): self._route_decr,
            ("POST", "/cache/batch"): self._route_batch,
            ("POST", "/cache/clear"): self._route_clear,
            ("GET", "/cache/scan"): self._route_scan,
            ("GET", "/cache/stats"): self._route_stats,
            ("GET", "/health"): self._route_health,
        }

    @property
    def directory(self) -> Path:
        return self._directory

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        route = self._routes.get((request.method, request.url.path))
        if route is None:
            return _json_response(404, {"error": "not found"}, request)

        try:
            body = json.loads(request.content) if request.content else {}
        except ValueError:
            return _json_response(400, {"error": "invalid JSON body"}, request)

        try:
            status, payload = route(request, body)
        except (KeyError, TypeError) as exc:
            return _json_response(400, {"error": f"bad request: {exc}"}, request)
        return _json_response(status, payload, request)

    async def aclose(self) -> None:
        self._cache.close()

    # ------------------------------------------------------------------ #
    # Storage primitives
    # ------------------------------------------------------------------ #

    def _put(self, key: str, value: Any, ttl: Optional[int]) -> None:
        expire = ttl if ttl and ttl > 0 else None
        self._cache.set(key, value, expire=expire)

    def _add(self, key: str, amount: int | float) -> tuple[int, Any]:
        with self._cache.transact():
            current, expire_time = self._cache.get(key, default=0, expire_time=True)
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                return 400, {"error": "non_numeric_value"}
            value = current + amount
            expire = None
            if expire_time is not None:
                expire = max(expire_time - time.time(), 0.001)
            self._cache.set(key, value, expire=expire)
        return 200, {"value": value}

    # ------------------------------------------------------------------ #
    # Routes
    # ------------------------------------------------------------------ #

    def _route_set(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        self._put(body["key"], body["value"], body.get("ttl"))
        return 200, {"success": True}

    def _route_get(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        key = request.url.params.get("key", "")
        value = self._cache.get(key)
        if value is None:
            return 404, {"error": "not found"}
        return 200, {"value": value}

    def _route_delete(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        self._cache.delete(request.url.params.get("key", ""))
        return 200, {"success": True}

    def _route_incr(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        return self._add(body["key"], body.get("amount", 1))

    def _route_decr(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        return self._add(body["key"], -body.get("amount", 1))

    def _route_batch(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        results: list[dict[str, Any]] = []
        for operation in body["operations"]:
            op, key = operation["op"], operation["key"]
            if op == "get":
                results.append({"op": "get", "key": key, "value": self._cache.get(key)})
            elif op == "set":
                self._put(key, operation.get("value"), operation.get("ttl"))
                results.append({"op": "set", "key": key, "success": True})
            elif op == "delete":
                self._cache.delete(key)
                results.append({"op": "delete", "key": key, "success": True})
            else:
                results.append({"op": op, "key": key, "error": f"unknown op {op!r}"})
        return 200, {"results": results}

    def _route_clear(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        cleared = self._cache.clear()
        return 200, {"success": True, "cleared": cleared}

    def _route_scan(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        prefix = request.url.params.get("prefix", "")
        keys_only = request.url.params.get("keys_only") == "true"

        items: list[dict[str, Any]] = []
        for key in self._cache.iterkeys():
            if not isinstance(key, str) or not key.startswith(prefix):
                continue
            value = self._cache.get(key, default=_MISSING)
            if value is _MISSING:
                continue
            items.append({"key": key, "value": value})

        if keys_only:
            keys = [item["key"] for item in items]
            return 200, {"keys": keys, "count": len(keys)}
        return 200, {"items": items, "count": len(items)}

    def _route_stats(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        self._cache.expire()
        hits, misses = self._cache.stats()
        return 200, {
            "size": len(self._cache),
            "limit": self._limit,
            "stats": {"hits": hits, "misses": misses, "directory": str(self._directory)},
        }

    def _route_health(self, request: httpx.Request, body: Any) -> tuple[int, Any]:
        return 200, {"status": "healthy"}


def _json_response(status: int, payload: Any, request: httpx.Request) -> httpx.Response:
    return httpx.Response(status, json=payload, request=request)
