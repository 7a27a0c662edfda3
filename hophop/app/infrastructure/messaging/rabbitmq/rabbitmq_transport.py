"""
RabbitMQ transport: connection lifecycle, queue declaration/binding, and basic-get receive.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CHANNEL_OPEN ->
  QUEUE_DECLARED -> READY.
  On shutdown: READY -> CLOSING -> close channel/connection -> CLOSED.

There is no reconnect loop here: a broken connection surfaces as TransportError
and the consumption loop stops. Deliveries are pulled one at a time and held in
a pending map keyed by delivery tag until acknowledged or requeued.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any

import aio_pika
from loguru import logger

from hophop.app.config.settings import Settings
from hophop.app.core import SERVICE_NAME
from hophop.app.core.backoff import exponential_backoff
from hophop.app.domain.envelope import Delivery
from hophop.app.infrastructure.messaging.rabbitmq.aio_pika_message_adapter import (
    AioPikaMessageAdapter,
    MessageDecodeError,
)
from hophop.app.infrastructure.messaging.rabbitmq.constants import TransportState
from hophop.app.ports.transport import TransportError, TransportNotReadyError, UnknownDeliveryError

POLL_INTERVAL_SECONDS = 0.1


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQTransport:
    """Transport implementation"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = TransportState.DISCONNECTED
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._queue: aio_pika.abc.AbstractQueue | None = None
        self._pending: dict[int, aio_pika.abc.AbstractIncomingMessage] = {}

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == TransportState.READY

    def _set_state(self, state: TransportState) -> None:
        self._state = state

    async def _open_channel_and_declare(self) -> None:
        if not self._connection:
            return
        self._set_state(TransportState.CHANNEL_OPEN)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=self._settings.prefetch_count)
        exchange = await self._channel.declare_exchange(
            self._settings.exchange_name,
            aio_pika.ExchangeType.TOPIC,
            durable=True,
        )
        self._queue = await self._channel.declare_queue(self._settings.queue_name, durable=True)
        for routing_key in self._settings.binding_keys:
            await self._queue.bind(exchange, routing_key=routing_key)
            _log("queue_bound", queue=self._settings.queue_name, routing_key=routing_key)
        self._set_state(TransportState.QUEUE_DECLARED)
        self._set_state(TransportState.READY)

    async def _close_channel_and_connection(self) -> None:
        self._queue = None
        self._pending.clear()
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None

    async def connect(self) -> None:
        self._set_state(TransportState.CONNECTING)
        _log("rmq_connecting", host=self._settings.broker_host, port=self._settings.broker_port)
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(self._settings.amqp_url)
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._set_state(TransportState.DISCONNECTED)
                    raise TransportError(f"could not connect to broker: {e}") from e
        self._set_state(TransportState.CONNECTED)
        _log("rmq_connected")
        try:
            await self._open_channel_and_declare()
        except Exception as e:
            self._set_state(TransportState.DISCONNECTED)
            await self._close_channel_and_connection()
            raise TransportError(f"queue setup failed: {e}") from e

    def _require_queue(self) -> aio_pika.abc.AbstractQueue:
        if not self.ready or self._queue is None:
            raise TransportNotReadyError("transport not connected")
        return self._queue

    async def receive_next(self, timeout: float) -> Delivery | None:
        queue = self._require_queue()
        deadline = time.monotonic() + timeout
        while True:
            try:
                message = await queue.get(no_ack=False, fail=False, timeout=timeout)
            except Exception as e:
                raise TransportError(f"receive failed: {e}") from e

            if message is not None:
                adapter = AioPikaMessageAdapter(message)
                try:
                    delivery = adapter.to_delivery()
                except MessageDecodeError as e:
                    logger.warning("dropping undecodable message {}: {}", adapter.delivery_tag, e)
                    try:
                        await message.reject(requeue=False)
                    except Exception as exc:
                        raise TransportError(f"reject failed: {exc}") from exc
                    continue
                self._pending[adapter.delivery_tag] = message
                return delivery

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(POLL_INTERVAL_SECONDS, remaining))

    def _take(self, delivery_id: Any) -> aio_pika.abc.AbstractIncomingMessage:
        try:
            return self._pending.pop(delivery_id)
        except KeyError:
            raise UnknownDeliveryError(f"unknown delivery: {delivery_id!r}") from None

    async def acknowledge(self, delivery_id: Any) -> None:
        self._require_queue()
        message = self._take(delivery_id)
        try:
            await message.ack()
        except Exception as e:
            raise TransportError(f"acknowledge failed: {e}") from e

    async def requeue(self, delivery_id: Any) -> None:
        self._require_queue()
        message = self._take(delivery_id)
        try:
            await message.nack(requeue=True)
        except Exception as e:
            raise TransportError(f"requeue failed: {e}") from e

    async def purge(self) -> int:
        queue = self._require_queue()
        try:
            result = await queue.purge()
        except Exception as e:
            raise TransportError(f"purge failed: {e}") from e
        count = int(getattr(result, "message_count", 0) or 0)
        _log("queue_purged", queue=self._settings.queue_name, count=count)
        return count

    async def close(self) -> None:
        self._set_state(TransportState.CLOSING)
        _log("consumer_shutdown")
        await self._close_channel_and_connection()
        self._set_state(TransportState.CLOSED)
