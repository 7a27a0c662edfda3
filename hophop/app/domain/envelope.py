"""Domain value objects for one delivered message."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from hophop.app.constants import METADATA_DEFAULTS


@dataclass(frozen=True)
class EventMetadata:
    """Headers, timestamp and routing key of a delivery. Headers are read-only."""

    headers: Mapping[str, Any]
    timestamp: int
    routing_key: str

    def __post_init__(self) -> None:
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        if not isinstance(self.timestamp, int):
            raise TypeError("metadata.timestamp must be an int")
        if not isinstance(self.routing_key, str):
            raise TypeError("metadata.routing_key must be a str")

    @property
    def producer(self) -> Any:
        return self.headers.get("producer")

    @property
    def version(self) -> Any:
        return self.headers.get("version")

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": dict(self.headers),
            "timestamp": self.timestamp,
            "routing_key": self.routing_key,
        }


def build_metadata(meta: Mapping[str, Any] | None = None) -> EventMetadata:
    """Fill unset metadata fields with defaults. Supplied values are kept as-is."""
    meta = dict(meta or {})
    headers = dict(meta.get("headers") or {})
    if headers.get("producer") is None:
        headers["producer"] = METADATA_DEFAULTS.PRODUCER
    if headers.get("version") is None:
        headers["version"] = METADATA_DEFAULTS.VERSION

    timestamp = meta.get("timestamp")
    if timestamp is None:
        timestamp = int(time.time())

    routing_key = meta.get("routing_key")
    if routing_key is None:
        routing_key = METADATA_DEFAULTS.ROUTING_KEY

    return EventMetadata(headers=headers, timestamp=int(timestamp), routing_key=str(routing_key))


@dataclass(frozen=True)
class Envelope:
    """Decoded payload plus metadata for one delivery.

    `context` is the transport's own handle for this delivery and is never
    inspected by the consumption loop.
    """

    payload: Any
    metadata: EventMetadata
    context: Any = field(default=None, compare=False, repr=False)

    @property
    def data(self) -> Any:
        return self.payload


@dataclass(frozen=True)
class DeliveryInfo:
    """Positional facts about a delivery, used to target acknowledge/requeue."""

    delivery_id: Any
    redelivery_count: int = 0

    def __post_init__(self) -> None:
        if self.redelivery_count < 0:
            raise ValueError("redelivery_count must be >= 0")

    @property
    def redelivered(self) -> bool:
        return self.redelivery_count > 0


@dataclass(frozen=True)
class Delivery:
    """An envelope paired with its delivery info for exactly one cycle."""

    envelope: Envelope
    info: DeliveryInfo
