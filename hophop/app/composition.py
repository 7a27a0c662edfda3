"""Composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from hophop.app.application.consumer import Consumer
from hophop.app.application.consumption_loop import ConsumptionLoop
from hophop.app.config.settings import Settings
from hophop.app.core import SERVICE_NAME
from hophop.app.infrastructure.messaging.factory import create_transport
from hophop.app.ports.transport import Transport


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class WorkerDependencies:
    """Holds the wired transport and loop for one consumer, and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        consumer: Consumer,
        transport: Transport | None = None,
    ) -> None:
        self._settings = settings
        self._consumer = consumer
        self._transport = transport
        self._loop: ConsumptionLoop | None = None
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            raise RuntimeError("transport is not initialized")
        return self._transport

    @property
    def loop(self) -> ConsumptionLoop:
        if self._loop is None:
            raise RuntimeError("loop is not initialized")
        return self._loop

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._transport is None:
            self._transport = create_transport(self._settings)
        await self._transport.connect()
        self._loop = ConsumptionLoop.from_settings(self._consumer, self._transport, self._settings)
        self._connected = True
        _log("dependencies_connected", transport=type(self._transport).__name__)

    async def close(self) -> None:
        if self._transport is not None:
            try:
                await self._transport.close()
            except Exception as exc:
                logger.warning("transport close failed: {}", exc)
        self._loop = None
        self._connected = False


def create_worker_dependencies(
    consumer: Consumer,
    settings: Settings | None = None,
    *,
    transport: Transport | None = None,
) -> WorkerDependencies:
    return WorkerDependencies(settings=settings or Settings(), consumer=consumer, transport=transport)
