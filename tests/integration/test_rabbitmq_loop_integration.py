import asyncio
import json
import os

import pytest

from hophop.app.application.consumption_loop import ConsumptionLoop
from hophop.app.config.settings import Settings
from hophop.app.infrastructure.messaging.rabbitmq.rabbitmq_transport import RabbitMQTransport
from tests.fakes import FlagConsumer

BROKER_HOST = os.environ.get("BROKER_HOST", "localhost")
BROKER_PORT = int(os.environ.get("BROKER_PORT", "5672"))
EXCHANGE = "hophop_test"
QUEUE_NAME = "test_queue_test"
ROUTING_KEY = "test.queue_connector_test"


def _settings() -> Settings:
    return Settings(
        broker_host=BROKER_HOST,
        broker_port=BROKER_PORT,
        exchange_name=EXCHANGE,
        queue_name=QUEUE_NAME,
        routing_keys=ROUTING_KEY,
        requeue_pacing_delay_seconds=0.1,
        receive_timeout_seconds=1.0,
        initial_backoff_seconds=0.1,
        max_backoff_seconds=0.1,
        max_connection_attempts=1,
    )


async def _broker_available() -> bool:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(BROKER_HOST, BROKER_PORT), timeout=1.0)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    return True


async def _publish(*payloads: dict) -> None:
    import aio_pika

    conn = await aio_pika.connect_robust(_settings().amqp_url)
    ch = await conn.channel()
    exchange = await ch.declare_exchange(EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)
    for payload in payloads:
        await exchange.publish(
            aio_pika.Message(
                body=json.dumps(payload).encode(),
                content_type="application/json",
                headers={"producer": "integration_test", "version": 1},
            ),
            routing_key=ROUTING_KEY,
        )
    await ch.close()
    await conn.close()


async def _run_scenario(consumer: FlagConsumer, *payloads: dict, max_cycles: int = 1) -> tuple[bool, int]:
    transport = RabbitMQTransport(_settings())
    await transport.connect()
    try:
        await transport.purge()
        await _publish(*payloads)
        await asyncio.sleep(0.25)
        loop = ConsumptionLoop.from_settings(consumer, transport, _settings(), max_cycles=max_cycles)
        ok = await loop.run()
    finally:
        await transport.close()

    # whatever is left on the queue afterwards
    transport = RabbitMQTransport(_settings())
    await transport.connect()
    try:
        leftover = await transport.purge()
    finally:
        await transport.close()
    return ok, leftover


@pytest.fixture(autouse=True)
def _require_broker():
    if not asyncio.run(_broker_available()):
        pytest.skip(f"no AMQP broker on {BROKER_HOST}:{BROKER_PORT}")


@pytest.mark.integration
def test_success_is_acknowledged():
    consumer = FlagConsumer()
    ok, leftover = asyncio.run(_run_scenario(consumer, {"token": "t2"}))

    assert ok is True
    assert leftover == 0
    assert consumer.consumed[0].metadata.producer == "integration_test"
    assert consumer.consumed[0].metadata.routing_key == ROUTING_KEY


@pytest.mark.integration
def test_ignore_acknowledges_error():
    ok, leftover = asyncio.run(_run_scenario(FlagConsumer(policy="ignore"), {"error": True}))

    assert ok is True
    assert leftover == 0


@pytest.mark.integration
def test_exit_requeues_and_fails_run():
    ok, leftover = asyncio.run(_run_scenario(FlagConsumer(policy="exit"), {"error": True}))

    assert ok is False
    assert leftover == 1


@pytest.mark.integration
def test_unrecognized_policy_requeues_and_fails_run():
    ok, leftover = asyncio.run(_run_scenario(FlagConsumer(policy="wtf"), {"error": True}))

    assert ok is False
    assert leftover == 1


@pytest.mark.integration
def test_halt_in_filter_skips_consume():
    consumer = FlagConsumer()
    ok, leftover = asyncio.run(_run_scenario(consumer, {"halt_in_filter": True}))

    assert ok is True
    assert consumer.consumed == []
    assert leftover == 0
