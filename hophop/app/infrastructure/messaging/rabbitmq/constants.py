"""RabbitMQ transport lifecycle states."""
from enum import Enum


class TransportState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CHANNEL_OPEN = "CHANNEL_OPEN"
    QUEUE_DECLARED = "QUEUE_DECLARED"
    READY = "READY"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


DELIVERY_COUNT_HEADER = "x-delivery-count"
