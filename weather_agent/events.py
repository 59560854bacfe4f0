"""Structured events for asset jobs.

The poller and the composer publish :class:`AssetEvent` objects on an
:class:`EventBus`.  Consumers (the SSE endpoint, tests, a telemetry hook)
subscribe with a callback or pull from an :class:`asyncio.Queue`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetEvent:
    job_id: str
    transition: str
    timestamp: float
    state: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Subscriber = Callable[[AssetEvent], None]


class EventBus:
    """Fan-out of :class:`AssetEvent` objects to subscribers.

    Subscribers are called synchronously in emission order.  A failing
    subscriber is logged and skipped so that a broken UI hook can never
    stall a poll loop.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* and return a function that removes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def queue(self, maxsize: int = 256) -> tuple[asyncio.Queue, Callable[[], None]]:
        """Return a queue fed with every future event, plus its unsubscribe hook.

        Events are dropped (with a warning) when the consumer falls behind
        and the queue is full.
        """
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        def _put(event: AssetEvent) -> None:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                log.warning("Event queue full, dropping %s for job %s", event.transition, event.job_id)

        return q, self.subscribe(_put)

    def emit(
        self,
        job_id: str,
        transition: str,
        state: str | None = None,
        detail: str | None = None,
    ) -> AssetEvent:
        event = AssetEvent(
            job_id=job_id,
            transition=transition,
            timestamp=self._clock(),
            state=state,
            detail=detail,
        )
        log.debug("Asset event %s", event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                log.exception("Event subscriber %r failed", callback)
        return event


__all__ = ["AssetEvent", "EventBus"]
