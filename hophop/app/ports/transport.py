"""Port: broker transport the consumption loop pulls from. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from hophop.app.domain.envelope import Delivery


class TransportError(Exception):
    """Base for broker failures (connection drop, channel closed, unknown delivery, etc.)."""


class TransportNotReadyError(TransportError):
    """Raised when the transport is used before connect() or after close()."""


class UnknownDeliveryError(TransportError):
    """Raised when acknowledging or requeueing a delivery the transport does not hold."""


@runtime_checkable
class Transport(Protocol):
    """Transport-agnostic receive/acknowledge/requeue contract."""

    @property
    def ready(self) -> bool: ...

    async def connect(self) -> None: ...

    async def receive_next(self, timeout: float) -> Delivery | None:
        """Wait up to `timeout` seconds for the next delivery; None when nothing arrived."""
        ...

    async def acknowledge(self, delivery_id: Any) -> None: ...

    async def requeue(self, delivery_id: Any) -> None:
        """Return the delivery to the queue so it is redelivered rather than lost."""
        ...

    async def purge(self) -> int:
        """Drop every queued message; returns how many were removed."""
        ...

    async def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
