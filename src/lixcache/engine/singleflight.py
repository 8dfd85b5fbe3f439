"""Keyed single-flight registry.

Coordinates concurrent requests for the same key so only one coroutine
performs the work while every other caller awaits the same
:class:`~lixcache.engine.handle.CompletionHandle`. The registry entry is
removed the moment the handle settles, successfully or not, so the next
call after settlement starts fresh work.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

from lixcache.engine.handle import CompletionHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Registry of in-flight work keyed by string.

    Args:
        name: Label used in log messages (``remember``, ``remember_all``).
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._inflight: dict[str, CompletionHandle[T]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    def run(self, key: str, work: Callable[[], Awaitable[T]]) -> CompletionHandle[T]:
        """Return the handle of the in-flight work for *key*, starting it if needed.

        *work* is only called when no entry exists for *key*. It runs in
        its own task, so a caller giving up on the handle does not cancel
        the work for the others.
        """
        handle = self._inflight.get(key)
        if handle is not None:
            logger.debug("%s: joining in-flight work for %r", self.name, key)
            return handle

        handle = CompletionHandle()
        self._inflight[key] = handle
        handle.add_listener(lambda settled: self._release(key, settled))

        task = asyncio.get_running_loop().create_task(_execute(work, handle))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def drain(self) -> None:
        """Wait until every started piece of work has settled."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _release(self, key: str, handle: CompletionHandle[Any]) -> None:
        if self._inflight.get(key) is handle:
            del self._inflight[key]


async def _execute(work: Callable[[], Awaitable[T]], handle: CompletionHandle[T]) -> None:
    try:
        value = await work()
    except Exception as exc:
        handle.reject(exc)
    except asyncio.CancelledError as exc:
        handle.reject(exc)
        raise
    else:
        handle.resolve(value)
