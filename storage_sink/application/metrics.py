"""Metrics channel for sink operation outcomes.

One emitter belongs to one sink. Records are pushed synchronously and
without blocking; subscribers each read from their own unbounded queue, so a
slow consumer never holds up an operation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from storage_sink.domain.value_objects import MetricRecord

logger = logging.getLogger(__name__)

MetricListener = Callable[[MetricRecord], None]

_CLOSED = object()


class MetricsSubscription:
    """Async iterator over records emitted after subscribing.

    Iteration ends when the emitter is closed or the subscription is
    cancelled with close().
    """

    def __init__(self, emitter: MetricsEmitter) -> None:
        self._emitter = emitter
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    def _push(self, item: object) -> None:
        self._queue.put_nowait(item)

    def __aiter__(self) -> AsyncIterator[MetricRecord]:
        return self

    async def __anext__(self) -> MetricRecord:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def pending(self) -> list[MetricRecord]:
        """Drain and return records already queued, without waiting."""
        records: list[MetricRecord] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                self._closed = True
                break
            records.append(item)  # type: ignore[arg-type]
        return records

    def close(self) -> None:
        """Stop receiving records; iteration ends after queued records."""
        if self._closed:
            return
        self._emitter._unsubscribe(self)
        self._push(_CLOSED)


class MetricsEmitter:
    """Push-only broadcast channel of MetricRecord events.

    emit() never raises into the caller: a failing listener is logged and
    skipped. The channel stays open until close() is called by its owner.
    """

    def __init__(self) -> None:
        self._listeners: list[MetricListener] = []
        self._subscriptions: list[MetricsSubscription] = []
        self._closed = False
        self._emitted = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def emitted(self) -> int:
        """Number of records emitted since the emitter was created."""
        return self._emitted

    def add_listener(self, listener: MetricListener) -> None:
        """Register a synchronous callback invoked for every record."""
        self._listeners.append(listener)

    def remove_listener(self, listener: MetricListener) -> None:
        """Unregister a callback; unknown callbacks are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscribe(self) -> MetricsSubscription:
        """Return an async iterator over records emitted from now on."""
        subscription = MetricsSubscription(self)
        if self._closed:
            subscription._push(_CLOSED)
        else:
            self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: MetricsSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def emit(self, record: MetricRecord) -> None:
        """Broadcast a record to all listeners and subscriptions."""
        if self._closed:
            logger.debug("Metrics emitter closed; dropping %s record", record.operation.value)
            return
        self._emitted += 1
        for subscription in list(self._subscriptions):
            subscription._push(record)
        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception:
                logger.exception("Metrics listener %r failed", listener)

    def close(self) -> None:
        """End all subscriptions. Further emits are dropped."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription._push(_CLOSED)
        self._subscriptions.clear()
        self._listeners.clear()
