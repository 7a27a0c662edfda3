"""
Consumption loop: pulls one delivery at a time and resolves it.

Cycle:
  receive_next -> filter chain -> consume (on proceed) -> on_error (on failure)
  -> outcome resolver -> acknowledge | pacing sleep + requeue.

The loop stops after a cycle that resolved fatally, after a cycle during which
termination was requested, on any transport error, or when stopped from outside
(stop() or max_cycles), which is only observed between cycles. run() returns
False if any cycle was fatal or the transport failed, True otherwise.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from hophop.app.application.consumer import Consumer, maybe_await
from hophop.app.application.filter_chain import FilterChain, FilterOutcome
from hophop.app.application.outcome_resolver import (
    BrokerAction,
    ConsumeResult,
    OutcomeResolver,
    Resolution,
)
from hophop.app.config.settings import Settings
from hophop.app.constants import STOP_REASON
from hophop.app.core import SERVICE_NAME
from hophop.app.domain.envelope import Delivery, DeliveryInfo, Envelope
from hophop.app.domain.loop_state import LoopState, bind_loop_state, reset_loop_state
from hophop.app.domain.policy import Policy
from hophop.app.ports.transport import Transport, TransportError

DEFAULT_REQUEUE_PACING_DELAY_SECONDS = 1.0
DEFAULT_RECEIVE_TIMEOUT_SECONDS = 1.0


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ConsumptionLoop:
    def __init__(
        self,
        consumer: Consumer,
        transport: Transport,
        *,
        requeue_pacing_delay_seconds: float = DEFAULT_REQUEUE_PACING_DELAY_SECONDS,
        receive_timeout_seconds: float = DEFAULT_RECEIVE_TIMEOUT_SECONDS,
        ack_on_filter_halt: bool = True,
        max_cycles: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if requeue_pacing_delay_seconds < 0:
            raise ValueError("requeue_pacing_delay_seconds must be >= 0")
        if receive_timeout_seconds <= 0:
            raise ValueError("receive_timeout_seconds must be > 0")
        if max_cycles is not None and max_cycles < 1:
            raise ValueError("max_cycles must be >= 1")

        self._consumer = consumer
        self._transport = transport
        self._pacing_delay = float(requeue_pacing_delay_seconds)
        self._receive_timeout = float(receive_timeout_seconds)
        self._max_cycles = max_cycles
        self._sleep = sleep
        self._filter_chain = FilterChain.for_consumer(consumer)
        self._resolver = OutcomeResolver(
            halt_action=BrokerAction.ACKNOWLEDGE if ack_on_filter_halt else BrokerAction.REQUEUE,
        )
        self._stop_requested = False
        self._state: LoopState | None = None

    @classmethod
    def from_settings(
        cls,
        consumer: Consumer,
        transport: Transport,
        settings: Settings,
        **kwargs: Any,
    ) -> "ConsumptionLoop":
        return cls(
            consumer,
            transport,
            requeue_pacing_delay_seconds=settings.requeue_pacing_delay_seconds,
            receive_timeout_seconds=settings.receive_timeout_seconds,
            ack_on_filter_halt=settings.ack_on_filter_halt,
            **kwargs,
        )

    @property
    def state(self) -> LoopState | None:
        """State of the run in progress, or of the last finished run."""
        return self._state

    @property
    def consumer(self) -> Consumer:
        return self._consumer

    def stop(self) -> None:
        """Ask the loop to stop before pulling the next message. Safe from signal handlers."""
        if not self._stop_requested:
            self._stop_requested = True
            _log("stop_requested")

    async def run(self) -> bool:
        state = LoopState()
        self._state = state
        token = bind_loop_state(state)
        _log(
            "loop_started",
            consumer=type(self._consumer).__name__,
            filters=self._filter_chain.names,
            pacing_delay=self._pacing_delay,
        )
        try:
            while True:
                reason = self._external_stop_reason(state)
                if reason is not None:
                    state.stop_reason = reason
                    break

                try:
                    delivery = await self._transport.receive_next(self._receive_timeout)
                except TransportError as exc:
                    self._fail_on_transport_error(state, "receive", exc)
                    break
                if delivery is None:
                    continue

                try:
                    await self._run_cycle(delivery, state)
                except TransportError as exc:
                    self._fail_on_transport_error(state, "resolve", exc)
                    break

                if state.should_stop:
                    state.stop_reason = (
                        STOP_REASON.FATAL_CYCLE if state.last_cycle_fatal else STOP_REASON.TERMINATION_REQUESTED
                    )
                    break
        finally:
            reset_loop_state(token)
            self._stop_requested = False

        ok = not state.last_cycle_fatal
        _log("loop_stopped", reason=state.stop_reason, cycles=state.cycles, ok=ok)
        return ok

    def _external_stop_reason(self, state: LoopState) -> str | None:
        if self._stop_requested:
            return STOP_REASON.STOP_SIGNAL
        if self._max_cycles is not None and state.cycles >= self._max_cycles:
            return STOP_REASON.MAX_CYCLES
        return None

    async def _run_cycle(self, delivery: Delivery, state: LoopState) -> None:
        envelope, info = delivery.envelope, delivery.info
        _log(
            "message_received",
            delivery_id=info.delivery_id,
            routing_key=envelope.metadata.routing_key,
            redelivery_count=info.redelivery_count,
        )
        resolution = await self._process(envelope, info)
        resolution.apply_to(state)
        await self._apply(resolution, info)
        state.cycles += 1

    async def _process(self, envelope: Envelope, info: DeliveryInfo) -> Resolution:
        try:
            result = await self._filter_chain.run(envelope, info)
        except Exception as exc:
            logger.warning("filter raised for delivery {}: {}", info.delivery_id, exc)
            policy = await self._policy_for(exc, envelope, info)
            return self._resolver.resolve(FilterOutcome.PROCEED, ConsumeResult.FAILURE, policy)

        if not result.proceed:
            _log("filter_halted", delivery_id=info.delivery_id, filter=result.halted_by)
            return self._resolver.resolve(FilterOutcome.HALTED, ConsumeResult.SKIPPED)

        try:
            await maybe_await(self._consumer.consume(envelope, info))
        except Exception as exc:
            _log(
                "consume_failed",
                delivery_id=info.delivery_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            policy = await self._policy_for(exc, envelope, info)
            return self._resolver.resolve(FilterOutcome.PROCEED, ConsumeResult.FAILURE, policy)

        return self._resolver.resolve(FilterOutcome.PROCEED, ConsumeResult.SUCCESS)

    async def _policy_for(self, error: Exception, envelope: Envelope, info: DeliveryInfo) -> Policy:
        try:
            raw = await maybe_await(self._consumer.on_error(error, envelope, info))
        except Exception as exc:
            logger.exception("on_error raised, aborting loop: {}", exc)
            return Policy.UNRECOGNIZED

        policy = Policy.classify(raw)
        if policy is Policy.UNRECOGNIZED:
            logger.warning(
                "on_error of {} returned unrecognized policy {!r}, aborting loop",
                type(self._consumer).__name__,
                raw,
            )
        _log("policy_resolved", delivery_id=info.delivery_id, policy=policy.value)
        return policy

    async def _apply(self, resolution: Resolution, info: DeliveryInfo) -> None:
        if resolution.action is BrokerAction.REQUEUE:
            _log("requeue_pacing", delivery_id=info.delivery_id, delay=self._pacing_delay)
            await self._sleep(self._pacing_delay)
            await self._transport.requeue(info.delivery_id)
            _log("message_requeued", delivery_id=info.delivery_id, fatal=resolution.fatal)
            return

        await self._transport.acknowledge(info.delivery_id)
        _log("message_acknowledged", delivery_id=info.delivery_id)

    def _fail_on_transport_error(self, state: LoopState, stage: str, exc: TransportError) -> None:
        logger.error("transport failed during {}: {}", stage, exc)
        _log("transport_error", stage=stage, error=str(exc))
        state.mark_fatal()
        state.stop_reason = STOP_REASON.TRANSPORT_ERROR
