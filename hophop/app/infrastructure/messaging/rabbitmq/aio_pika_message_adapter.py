"""Adapter: turn an aio_pika.IncomingMessage into a Delivery the loop understands."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from aio_pika import IncomingMessage as AioPikaIncomingMessage

from hophop.app.domain.envelope import Delivery, DeliveryInfo, Envelope, build_metadata
from hophop.app.infrastructure.messaging.rabbitmq.constants import DELIVERY_COUNT_HEADER


class MessageDecodeError(ValueError):
    """Raised when a message body is not valid UTF-8 JSON."""


def _plain(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class AioPikaMessageAdapter:
    """Wraps one aio_pika message; the raw message travels as the envelope context."""

    def __init__(self, message: AioPikaIncomingMessage) -> None:
        self._message = message

    @property
    def delivery_tag(self) -> int:
        return int(self._message.delivery_tag)

    def decode_payload(self) -> Any:
        try:
            return json.loads(self._message.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MessageDecodeError(f"undecodable message body: {exc}") from exc

    def metadata(self) -> dict[str, Any]:
        headers = {str(k): _plain(v) for k, v in (self._message.headers or {}).items()}
        if headers.get("producer") is None and self._message.app_id:
            headers["producer"] = self._message.app_id

        timestamp = self._message.timestamp
        if isinstance(timestamp, datetime):
            timestamp = int(timestamp.timestamp())

        return {
            "headers": headers,
            "timestamp": timestamp,
            "routing_key": self._message.routing_key,
        }

    def redelivery_count(self) -> int:
        count = (self._message.headers or {}).get(DELIVERY_COUNT_HEADER)
        if count is not None:
            try:
                return max(int(count), 0)
            except (TypeError, ValueError):
                pass
        return 1 if self._message.redelivered else 0

    def to_delivery(self) -> Delivery:
        envelope = Envelope(
            payload=self.decode_payload(),
            metadata=build_metadata(self.metadata()),
            context=self._message,
        )
        info = DeliveryInfo(delivery_id=self.delivery_tag, redelivery_count=self.redelivery_count())
        return Delivery(envelope=envelope, info=info)
