"""Operation queue and batch scheduler.

:class:`BatchQueue` accumulates get/set/delete operations issued during one
pass of the asyncio event loop and sends them to the cache server as a
single batch exchange:

1. The first :meth:`~BatchQueue.enqueue` into an empty queue schedules one
   flush with :meth:`asyncio.AbstractEventLoop.call_soon`, which runs after
   the currently executing callback (and every other callback already
   ready) finishes. Operations enqueued before the flush runs join the
   same batch; later ones start a new cycle.
2. The flush snapshots and clears the queue without yielding, then sends
   the snapshot in its original order.
3. Results are matched to operations by position. A transport failure
   rejects every handle of the snapshot with the same error; a per-entry
   store error rejects only that entry's handle.

Duplicate reads are collapsed by :meth:`~BatchQueue.read`: a get for a
key that already has a pending get in the current cycle is not queued
again, the caller is attached to the existing operation's handle instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from lixcache.engine.handle import CompletionHandle
from lixcache.exceptions import LixStoreError, ProtocolError
from lixcache.models import (
    BatchResult,
    DeleteOperation,
    GetOperation,
    SetOperation,
)

logger = logging.getLogger(__name__)

Operation = Union[GetOperation, SetOperation, DeleteOperation]
SendBatch = Callable[[list[Operation]], Awaitable[Sequence[BatchResult]]]


@dataclass
class QueuedOperation:
    """An operation waiting to be flushed, paired with its completion handle."""

    operation: Operation
    handle: CompletionHandle[Any]


class BatchQueue:
    """Coalesces cache operations into one batch exchange per event-loop pass.

    Args:
        send: Coroutine function performing the batch exchange. It receives
            the operations in enqueue order and must return one result per
            operation, in the same order.
        batching: When ``False`` every operation is dispatched as its own
            single-operation batch and reads are never collapsed.

    Every queue is owned by one client instance; queues never share state.
    """

    def __init__(self, send: SendBatch, batching: bool = True) -> None:
        self._send = send
        self._batching = batching
        self._pending: list[QueuedOperation] = []
        self._flush_handle: Optional[asyncio.Handle] = None
        self._inflight: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> list[Operation]:
        """Operations queued for the next flush, in enqueue order."""
        return [entry.operation for entry in self._pending]

    # ------------------------------------------------------------------ #
    # Enqueueing
    # ------------------------------------------------------------------ #

    def enqueue(self, operation: Operation) -> CompletionHandle[Any]:
        """Queue *operation* for the next flush and return its handle.

        Never blocks and never performs I/O. Must be called while an event
        loop is running.
        """
        entry = QueuedOperation(operation, CompletionHandle())
        if not self._batching:
            self._dispatch([entry])
            return entry.handle

        self._pending.append(entry)
        self._schedule()
        return entry.handle

    def read(self, key: str) -> CompletionHandle[Any]:
        """Queue a get for *key*, collapsing onto a pending get of the same key."""
        if self._batching:
            for entry in self._pending:
                if isinstance(entry.operation, GetOperation) and entry.operation.key == key:
                    follower: CompletionHandle[Any] = CompletionHandle()
                    entry.handle.attach(follower)
                    logger.debug("Collapsed read of %r onto a pending get", key)
                    return follower
        return self.enqueue(GetOperation(key=key))

    # ------------------------------------------------------------------ #
    # Scheduling
    # ------------------------------------------------------------------ #

    def _schedule(self) -> None:
        if self._flush_handle is not None:
            return
        self._flush_handle = asyncio.get_running_loop().call_soon(self._flush)

    def _flush(self) -> None:
        self._flush_handle = None
        if not self._pending:
            return
        batch, self._pending = self._pending, []
        self._dispatch(batch)

    def _dispatch(self, batch: list[QueuedOperation]) -> None:
        task = asyncio.get_running_loop().create_task(self._exchange(batch))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def drain(self) -> None:
        """Flush pending operations now and wait for every in-flight batch."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Exchange
    # ------------------------------------------------------------------ #

    async def _exchange(self, batch: list[QueuedOperation]) -> None:
        logger.debug("Flushing batch of %d operation(s)", len(batch))
        try:
            results = await self._send([entry.operation for entry in batch])
        except Exception as exc:
            logger.warning("Batch of %d operation(s) failed: %s", len(batch), exc)
            _reject_all(batch, exc)
            return
        except asyncio.CancelledError as exc:
            _reject_all(batch, exc)
            raise

        if len(results) != len(batch):
            _reject_all(
                batch,
                ProtocolError(
                    f"Batch response has {len(results)} result(s) "
                    f"for {len(batch)} operation(s)"
                ),
            )
            return

        for entry, result in zip(batch, results):
            _settle(entry, result)


def _settle(entry: QueuedOperation, result: BatchResult) -> None:
    operation = entry.operation
    if result.error is not None:
        entry.handle.reject(LixStoreError(operation.op, operation.key, result.error))
    elif result.op != operation.op:
        entry.handle.reject(
            ProtocolError(f"Expected a {operation.op!r} result, got {result.op!r}")
        )
    elif isinstance(operation, GetOperation):
        entry.handle.resolve(result.value)  # type: ignore[union-attr]
    else:
        entry.handle.resolve(None)


def _reject_all(batch: list[QueuedOperation], error: BaseException) -> None:
    for entry in batch:
        entry.handle.reject(error)
