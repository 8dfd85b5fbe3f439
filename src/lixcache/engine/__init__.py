"""Operation-coalescing and deduplication engine.

Classes:
    :class:`CompletionHandle` -- settle-once, multi-listener result.
    :class:`BatchQueue` -- per-loop-pass operation queue, flush scheduler,
        and read collapser.
    :class:`SingleFlight` -- keyed registry of in-flight work.
"""

from lixcache.engine.handle import CompletionHandle, HandleState
from lixcache.engine.queue import BatchQueue, QueuedOperation
from lixcache.engine.singleflight import SingleFlight

__all__ = [
    "BatchQueue",
    "CompletionHandle",
    "HandleState",
    "QueuedOperation",
    "SingleFlight",
]
