"""Transport factory: selects implementation from config. Only place that imports concrete transports."""
from __future__ import annotations

from hophop.app.config.settings import Settings
from hophop.app.infrastructure.messaging.inmemory.in_memory_transport import InMemoryTransport
from hophop.app.infrastructure.messaging.rabbitmq.rabbitmq_transport import RabbitMQTransport
from hophop.app.ports.transport import Transport


def create_transport(settings: Settings) -> Transport:
    backend = settings.transport_backend.strip().lower()

    if backend == "rabbitmq":
        return RabbitMQTransport(settings)

    if backend == "inmemory":
        return InMemoryTransport()

    raise ValueError(f"Unsupported transport backend: {backend}")
