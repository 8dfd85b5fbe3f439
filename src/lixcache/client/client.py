"""The :class:`LixCache` client.

:class:`LixCache` is the application-facing API. Its calls fall into three
groups:

- **Queued operations** -- :meth:`~LixCache.get`, :meth:`~LixCache.set`,
  :meth:`~LixCache.delete` and :meth:`~LixCache.exists` go through a
  :class:`~lixcache.engine.BatchQueue`: everything issued during one pass
  of the event loop travels in one ``POST /cache/batch`` request, and
  duplicate gets of one key are collapsed.
- **Single-flight helpers** -- :meth:`~LixCache.remember` and
  :meth:`~LixCache.remember_all` run at most one fetch-or-compute sequence
  per key (or prefix) at a time; concurrent callers share its outcome.
- **Direct calls** -- :meth:`~LixCache.incr`, :meth:`~LixCache.decr`,
  :meth:`~LixCache.scan`, :meth:`~LixCache.batch`, :meth:`~LixCache.clear`,
  :meth:`~LixCache.stats` and :meth:`~LixCache.health` are sent as soon as
  they are awaited.

Example::

    async with LixCache() as cache:
        await cache.set("user:1", {"name": "Alice"}, ttl=60)
        user = await cache.get("user:1")

        report = await cache.remember("report:monthly", build_report, ttl=3600)
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from lixcache.client.http import StoreConnection
from lixcache.config import default_client_config
from lixcache.engine import BatchQueue, SingleFlight
from lixcache.engine.queue import Operation
from lixcache.exceptions import LixStoreError, ProtocolError
from lixcache.models import (
    BatchResult,
    CacheStats,
    ClearResult,
    ClientConfig,
    DeleteOperation,
    HealthResponse,
    RememberAllResult,
    ScanResult,
    SetOperation,
    dump_operation,
    operations_adapter,
    results_adapter,
)

T = TypeVar("T")

Producer = Callable[[], Union[Awaitable[T], T]]

LIST_MARKER_SUFFIX = "__list__"


def list_marker_key(prefix: str) -> str:
    """Return the freshness-marker key of the item list stored under *prefix*."""
    return f"{prefix}{LIST_MARKER_SUFFIX}"


class LixCache:
    """Asynchronous client for a Lix cache server.

    All queued state (pending operations, in-flight remember calls) belongs
    to the instance, so several independently configured clients can be
    used side by side. Must be used from within a running event loop.

    Args:
        config: Connection settings. Defaults to
            :func:`~lixcache.config.default_client_config`, which honours
            ``LIX_CACHE_URL``.
        transport: Optional :class:`httpx.AsyncBaseTransport` replacing the
            network, e.g. :class:`~lixcache.store.DiskStoreTransport`.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or default_client_config()
        self._connection = StoreConnection(self._config, transport=transport)
        self._queue = BatchQueue(self._send_batch, batching=self._config.batching)
        self._remembering: SingleFlight[Any] = SingleFlight("remember")
        self._remembering_all: SingleFlight[RememberAllResult[Any]] = SingleFlight(
            "remember_all"
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> LixCache:
        await self._connection.__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Finish in-flight work, send pending operations, and close.

        Running :meth:`remember` / :meth:`remember_all` sequences are awaited
        first, since they may still queue writes. Once closed the client
        cannot be reused: later operations fail with :class:`RuntimeError`.
        """
        await self._remembering.drain()
        await self._remembering_all.drain()
        await self._queue.drain()
        await self._connection.aclose()

    # ------------------------------------------------------------------ #
    # Queued operations
    # ------------------------------------------------------------------ #

    async def get(self, key: str) -> Any:
        """Return the value cached under *key*, or ``None`` when absent.

        Gets issued in the same event-loop pass share one request, and
        gets of the same key share one operation within it.
        """
        return await self._queue.read(key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store *value* under *key*, expiring after *ttl* seconds (``0``/``None`` = never)."""
        await self._queue.enqueue(SetOperation(key=key, value=value, ttl=ttl))

    async def delete(self, key: str) -> None:
        """Remove *key* from the cache. Deleting a missing key is not an error."""
        await self._queue.enqueue(DeleteOperation(key=key))

    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* currently holds a value."""
        return (await self.get(key)) is not None

    # ------------------------------------------------------------------ #
    # Direct calls
    # ------------------------------------------------------------------ #

    async def incr(self, key: str, amount: int = 1) -> int:
        """Atomically add *amount* to the number stored under *key*; return the new value."""
        data = await self._connection.post("/cache/incr", {"key": key, "amount": amount})
        return data["value"]

    async def decr(self, key: str, amount: int = 1) -> int:
        """Atomically subtract *amount* from the number stored under *key*; return the new value."""
        data = await self._connection.post("/cache/decr", {"key": key, "amount": amount})
        return data["value"]

    async def scan(self, prefix: str = "", keys_only: bool = False) -> ScanResult:
        """List cached entries whose key starts with *prefix* (``""`` lists all)."""
        params = {"prefix": prefix}
        if keys_only:
            params["keys_only"] = "true"
        data = await self._connection.get("/cache/scan", params)
        return ScanResult.model_validate(data)

    async def batch(
        self, operations: Iterable[Union[Operation, dict[str, Any]]]
    ) -> list[BatchResult]:
        """Send *operations* as one explicit batch, bypassing the queue.

        Operations may be model instances or plain dicts such as
        ``{"op": "set", "key": "a", "value": 1}``. Operations the store
        refused are reported in their result's ``error`` field, not raised.
        """
        raw = [op.model_dump() if isinstance(op, BaseModel) else op for op in operations]
        return list(await self._send_batch(operations_adapter.validate_python(raw)))

    async def clear(self) -> ClearResult:
        """Remove every entry from the cache."""
        return ClearResult.model_validate(await self._connection.post("/cache/clear"))

    async def stats(self) -> CacheStats:
        """Return the server's size, limit and statistics."""
        return CacheStats.model_validate(await self._connection.get("/cache/stats"))

    async def health(self) -> HealthResponse:
        """Return the server's health status."""
        return HealthResponse.model_validate(await self._connection.get("/health"))

    async def _send_batch(self, operations: list[Operation]) -> list[BatchResult]:
        body = {"operations": [dump_operation(op) for op in operations]}
        data = await self._connection.post("/cache/batch", body)
        try:
            return results_adapter.validate_python((data or {}).get("results", []))
        except (ValidationError, AttributeError) as exc:
            raise ProtocolError(f"Malformed batch response: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Single-flight helpers
    # ------------------------------------------------------------------ #

    async def remember(self, key: str, producer: Producer[T], ttl: Optional[int] = None) -> T:
        """Return the value cached under *key*, computing and storing it on a miss.

        On a miss *producer* is called (it may be a coroutine function or a
        plain function) and its result is stored with *ttl* before being
        returned. Concurrent calls for the same key share one execution:
        *producer* runs at most once while a call is in flight.

        Raises:
            Exception: Whatever the read, *producer* or the write raised.
                Nothing is stored when *producer* fails, and a value is only
                returned once it has been stored.
        """

        async def fetch_or_compute() -> T:
            cached = await self.get(key)
            if cached is not None:
                return cached
            value = await _call(producer)
            await self.set(key, value, ttl=ttl)
            return value

        return await self._remembering.run(key, fetch_or_compute)

    async def remember_all(
        self,
        prefix: str,
        producer: Producer[Iterable[T]],
        key_of: Callable[[T], str],
        ttl: Optional[int] = None,
        list_ttl: Optional[int] = None,
    ) -> RememberAllResult[T]:
        """Fetch a list, cache each item under ``prefix + key_of(item)``, and return it.

        Without *list_ttl* the list is always fetched from *producer*. With
        *list_ttl* a freshness marker (``prefix + "__list__"``) is written
        after each fetch; while it exists, the items are read back from the
        cache with a prefix scan instead of calling *producer*.

        Concurrent calls for the same prefix share one execution; the
        options of the call that started it apply.

        Note:
            The marker only records that a fetch happened within
            *list_ttl*. Items whose own *ttl* is shorter than *list_ttl*
            may have expired, in which case the scanned list is shorter
            than the last fetched one.
        """
        marker = list_marker_key(prefix)

        async def fetch_all() -> RememberAllResult[T]:
            if list_ttl is not None and await self.exists(marker):
                scanned = await self.scan(prefix)
                items = [item.value for item in scanned.items or [] if item.key != marker]
                return RememberAllResult(items, key_of)

            items = list(await _call(producer))
            await self._store_items(prefix, items, key_of, ttl)
            if list_ttl is not None:
                await self.set(marker, True, ttl=list_ttl)
            return RememberAllResult(items, key_of)

        return await self._remembering_all.run(prefix, fetch_all)

    async def _store_items(
        self,
        prefix: str,
        items: list[T],
        key_of: Callable[[T], str],
        ttl: Optional[int],
    ) -> None:
        if not items:
            return
        operations: list[Operation] = [
            SetOperation(key=f"{prefix}{key_of(item)}", value=item, ttl=ttl) for item in items
        ]
        results = await self._send_batch(operations)
        if len(results) != len(operations):
            raise ProtocolError(
                f"Batch response has {len(results)} result(s) "
                f"for {len(operations)} operation(s)"
            )
        for operation, result in zip(operations, results):
            if result.error is not None:
                raise LixStoreError(operation.op, operation.key, result.error)


async def _call(producer: Producer[T]) -> T:
    result = producer()
    if inspect.isawaitable(result):
        return await result
    return result
