"""In-memory transport for tests and local runs.

Doubles as the synthetic event injector: `inject()` fills missing metadata with
the same defaults a reference test harness expects, then enqueues the event.
"""
from __future__ import annotations

import asyncio
import itertools
from collections import deque
from typing import Any, Mapping

from hophop.app.domain.envelope import Delivery, DeliveryInfo, Envelope, build_metadata
from hophop.app.ports.transport import TransportNotReadyError, UnknownDeliveryError


class InMemoryTransport:
    def __init__(self) -> None:
        self._queue: deque[Delivery] = deque()
        self._in_flight: dict[int, Delivery] = {}
        self._ids = itertools.count(1)
        self._arrived: asyncio.Event | None = None
        self._connected = False
        self._closed = False
        self._fail_on: dict[str, Exception] = {}
        self.acknowledged: list[int] = []
        self.requeued: list[int] = []

    @property
    def ready(self) -> bool:
        return self._connected and not self._closed

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def connect(self) -> None:
        self._connected = True
        self._closed = False

    def inject(
        self,
        payload: Any,
        metadata: Mapping[str, Any] | None = None,
        context: Any = None,
    ) -> Delivery:
        envelope = Envelope(payload=payload, metadata=build_metadata(metadata), context=context)
        delivery = Delivery(envelope=envelope, info=DeliveryInfo(delivery_id=next(self._ids)))
        self._queue.append(delivery)
        self._wake()
        return delivery

    def fail_on(self, operation: str, exc: Exception | None = None) -> None:
        """Make `receive`, `acknowledge` or `requeue` raise until cleared with exc=None."""
        if operation not in ("receive", "acknowledge", "requeue"):
            raise ValueError(f"unknown operation: {operation}")
        if exc is None:
            self._fail_on.pop(operation, None)
        else:
            self._fail_on[operation] = exc

    def _wake(self) -> None:
        if self._arrived is not None:
            self._arrived.set()

    def _check(self, operation: str) -> None:
        if not self.ready:
            raise TransportNotReadyError("transport not connected")
        exc = self._fail_on.get(operation)
        if exc is not None:
            raise exc

    async def receive_next(self, timeout: float) -> Delivery | None:
        self._check("receive")
        if not self._queue:
            self._arrived = asyncio.Event()
            try:
                await asyncio.wait_for(self._arrived.wait(), timeout)
            except asyncio.TimeoutError:
                return None
            if not self._queue:
                return None
        delivery = self._queue.popleft()
        self._in_flight[delivery.info.delivery_id] = delivery
        return delivery

    def _take(self, delivery_id: Any) -> Delivery:
        try:
            return self._in_flight.pop(delivery_id)
        except KeyError:
            raise UnknownDeliveryError(f"unknown delivery: {delivery_id!r}") from None

    async def acknowledge(self, delivery_id: Any) -> None:
        self._check("acknowledge")
        self._take(delivery_id)
        self.acknowledged.append(delivery_id)

    async def requeue(self, delivery_id: Any) -> None:
        self._check("requeue")
        delivery = self._take(delivery_id)
        self.requeued.append(delivery_id)
        info = DeliveryInfo(
            delivery_id=next(self._ids),
            redelivery_count=delivery.info.redelivery_count + 1,
        )
        self._queue.appendleft(Delivery(envelope=delivery.envelope, info=info))
        self._wake()

    async def purge(self) -> int:
        if not self.ready:
            raise TransportNotReadyError("transport not connected")
        count = len(self._queue)
        self._queue.clear()
        return count

    async def close(self) -> None:
        self._closed = True
        self._connected = False
        # Unresolved deliveries go back to the queue, as a broker would do on channel close.
        for delivery_id in sorted(self._in_flight, reverse=True):
            delivery = self._in_flight.pop(delivery_id)
            self._queue.appendleft(delivery)

