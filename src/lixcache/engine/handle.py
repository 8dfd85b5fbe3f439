"""One-shot completion handles with listener fan-out.

A :class:`CompletionHandle` is the eventual outcome of a queued cache
operation or of a single-flight computation. Any number of parties can
attach to one handle; each attached listener is invoked exactly once, in
registration order, with the same settled handle. Listeners attached after
settlement run immediately.

Handles are awaitable, so callers simply write ``value = await handle``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Callable, Generator, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[["CompletionHandle[Any]"], None]


class HandleState(str, enum.Enum):
    """Settlement state of a :class:`CompletionHandle`."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class CompletionHandle(Generic[T]):
    """A settle-once result shared by every interested caller.

    Unlike :class:`asyncio.Future`, a handle does not belong to an event
    loop and notifies its listeners synchronously, in the order they were
    attached, at the moment it settles.

    Example::

        handle = CompletionHandle()
        handle.add_listener(lambda h: print(h.result()))
        handle.resolve(42)   # prints 42
        assert await handle == 42
    """

    def __init__(self) -> None:
        self._state = HandleState.PENDING
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._listeners: list[Listener] = []

    @property
    def state(self) -> HandleState:
        return self._state

    def done(self) -> bool:
        """Return ``True`` once the handle is fulfilled or rejected."""
        return self._state is not HandleState.PENDING

    def result(self) -> T:
        """Return the fulfilled value or raise the rejection error.

        Raises:
            asyncio.InvalidStateError: If the handle is still pending.
        """
        if self._state is HandleState.PENDING:
            raise asyncio.InvalidStateError("Completion handle is still pending")
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def exception(self) -> Optional[BaseException]:
        """Return the rejection error, or ``None`` if the handle was fulfilled."""
        if self._state is HandleState.PENDING:
            raise asyncio.InvalidStateError("Completion handle is still pending")
        return self._error

    # ------------------------------------------------------------------ #
    # Settlement
    # ------------------------------------------------------------------ #

    def resolve(self, value: T) -> None:
        """Fulfil the handle with *value* and notify every listener."""
        self._settle(HandleState.FULFILLED, value, None)

    def reject(self, error: BaseException) -> None:
        """Reject the handle with *error* and notify every listener."""
        self._settle(HandleState.REJECTED, None, error)

    def _settle(
        self,
        state: HandleState,
        value: Optional[T],
        error: Optional[BaseException],
    ) -> None:
        if self._state is not HandleState.PENDING:
            raise asyncio.InvalidStateError(
                f"Completion handle already {self._state.value}"
            )
        self._state = state
        self._value = value
        self._error = error

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            self._notify(listener)

    def _notify(self, listener: Listener) -> None:
        try:
            listener(self)
        except Exception:
            logger.exception("Completion handle listener %r failed", listener)

    # ------------------------------------------------------------------ #
    # Fan-out
    # ------------------------------------------------------------------ #

    def add_listener(self, listener: Listener) -> None:
        """Attach *listener*; it runs immediately if the handle already settled."""
        if self.done():
            self._notify(listener)
        else:
            self._listeners.append(listener)

    def attach(self, other: CompletionHandle[T]) -> None:
        """Settle *other* with this handle's outcome once it is known."""
        self.add_listener(other._adopt)

    def _adopt(self, source: CompletionHandle[Any]) -> None:
        if source._error is not None:
            self.reject(source._error)
        else:
            self.resolve(source._value)

    # ------------------------------------------------------------------ #
    # Awaiting
    # ------------------------------------------------------------------ #

    def __await__(self) -> Generator[Any, None, T]:
        if not self.done():
            waiter = asyncio.get_running_loop().create_future()
            self.add_listener(lambda _handle: _wake(waiter))
            yield from waiter.__await__()
        return self.result()

    def __repr__(self) -> str:
        return f"<CompletionHandle {self._state.value}>"


def _wake(waiter: asyncio.Future[None]) -> None:
    """Release a coroutine suspended on a handle, unless it was cancelled."""
    if not waiter.done():
        waiter.set_result(None)
