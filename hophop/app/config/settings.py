from urllib.parse import quote

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")
    broker_vhost: str = Field("/", validation_alias="BROKER_VHOST")

    exchange_name: str = Field("events", validation_alias="EXCHANGE_NAME")
    queue_name: str = Field("hophop_queue", validation_alias="QUEUE_NAME")
    # Comma separated topic patterns the queue is bound with.
    routing_keys: str = Field("#", validation_alias="ROUTING_KEYS")
    prefetch_count: int = Field(1, validation_alias="PREFETCH_COUNT")

    requeue_pacing_delay_seconds: float = Field(
        1.0,
        ge=0.0,
        validation_alias="REQUEUE_PACING_DELAY_SECONDS",
    )
    receive_timeout_seconds: float = Field(1.0, gt=0.0, validation_alias="RECEIVE_TIMEOUT_SECONDS")
    ack_on_filter_halt: bool = Field(True, validation_alias="ACK_ON_FILTER_HALT")

    transport_backend: str = Field("rabbitmq", validation_alias="TRANSPORT_BACKEND")
    consumer_class: str = Field("", validation_alias="CONSUMER_CLASS")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")

    @property
    def binding_keys(self) -> list[str]:
        return [key.strip() for key in self.routing_keys.split(",") if key.strip()]

    @property
    def amqp_url(self) -> str:
        vhost = self.broker_vhost.lstrip("/")
        return (
            f"amqp://{quote(self.broker_user, safe='')}:{quote(self.broker_password, safe='')}"
            f"@{self.broker_host}:{self.broker_port}/{vhost}"
        )
