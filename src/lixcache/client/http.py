"""Asynchronous HTTP transport to the Lix cache server.

This module provides :class:`StoreConnection`, a thin wrapper around
:class:`httpx.AsyncClient` used by :class:`~lixcache.client.LixCache` for
every network call. It layers on:

- **Retry with backoff** -- connection and network errors are retried
  ``max_retries`` times with exponential delay
  (``retry_delay``, ``2 * retry_delay``, ``4 * retry_delay``, ...).
- **Timeout mapping** -- an expired timeout raises
  :class:`~lixcache.exceptions.LixTimeoutError` and is not retried.
- **Error mapping** -- non-2xx responses raise a typed
  :class:`~lixcache.exceptions.LixCacheError`.

The connection never retries on behalf of the batch engine beyond these
transport-level retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from lixcache.exceptions import (
    LixAuthError,
    LixConnectionError,
    LixNotFoundError,
    LixServerError,
    LixTimeoutError,
    LixTypeError,
)
from lixcache.models import ClientConfig

logger = logging.getLogger(__name__)


class StoreConnection:
    """HTTP connection to one Lix cache server.

    The underlying :class:`httpx.AsyncClient` is created on first use and
    released by :meth:`aclose`. A closed connection cannot be reopened;
    any later request raises :class:`RuntimeError`.

    Args:
        config: Connection settings (URL, timeout, retries).
        transport: Optional :class:`httpx.AsyncBaseTransport` replacing the
            network, e.g. :class:`~lixcache.store.DiskStoreTransport` or an
            :class:`httpx.MockTransport` in tests.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> StoreConnection:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._closed = True
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._closed:
            raise RuntimeError("Cannot send a request, as the connection has been closed.")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.url,
                timeout=self._config.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def get(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        """Send a GET request and return the decoded JSON body."""
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json_body: Optional[Any] = None) -> Any:
        """Send a POST request with a JSON body and return the decoded JSON body."""
        return await self.request("POST", path, json_body=json_body)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Make a request with retry and error mapping.

        Returns:
            The decoded JSON body, or ``None`` for an empty body.

        Raises:
            LixAuthError: On 401.
            LixNotFoundError: On 404.
            LixTypeError: On 400 reporting a non-numeric counter.
            LixServerError: On any other non-2xx status.
            LixTimeoutError: When the request exceeds the timeout.
            LixConnectionError: On network errors after all retries.
        """
        response = await self._execute_with_retry(method, path, params, json_body)
        self._map_response_error(response, path, params, json_body)
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _execute_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]],
        json_body: Optional[Any],
    ) -> httpx.Response:
        client = self._ensure_client()
        max_retries = self._config.max_retries

        for attempt in range(max_retries + 1):
            try:
                kwargs: dict[str, Any] = {"method": method, "url": path}
                if params is not None:
                    kwargs["params"] = params
                if json_body is not None:
                    kwargs["json"] = json_body
                return await client.request(**kwargs)

            except httpx.TimeoutException as exc:
                raise LixTimeoutError(self._config.timeout) from exc

            except (httpx.ConnectError, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = self._config.retry_delay * 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise LixConnectionError(self._config.url, exc) from exc

        raise LixConnectionError(self._config.url)  # pragma: no cover

    def _map_response_error(
        self,
        response: httpx.Response,
        path: str,
        params: Optional[dict[str, str]],
        json_body: Optional[Any],
    ) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json()
        except ValueError:
            detail = {"error": response.text[:200]}

        key = _request_key(params, json_body)

        if status == 401:
            raise LixAuthError()
        if status == 404:
            raise LixNotFoundError(key)
        if status == 400:
            message = detail.get("error", "") if isinstance(detail, dict) else ""
            if isinstance(message, str) and "non_numeric" in message:
                operation = "incr" if "incr" in path else "decr"
                raise LixTypeError(key, operation)
        raise LixServerError(status, detail)


def _request_key(params: Optional[dict[str, str]], json_body: Optional[Any]) -> str:
    """Best-effort extraction of the cache key a request was about."""
    if params and "key" in params:
        return params["key"]
    if isinstance(json_body, dict) and isinstance(json_body.get("key"), str):
        return json_body["key"]
    return "unknown"
