"""Consumer contract: the business-logic unit the consumption loop drives."""
from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, ClassVar, Sequence, Union

from loguru import logger

from hophop.app.core import SERVICE_NAME
from hophop.app.domain.envelope import DeliveryInfo, Envelope
from hophop.app.domain.loop_state import current_loop_state
from hophop.app.domain.policy import Policy

FilterFn = Callable[[Envelope, DeliveryInfo], Union[bool, Awaitable[bool]]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def maybe_await(value: Any) -> Any:
    """Await coroutine results so hooks may be written sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


class Consumer:
    """
    Base class for consumers.

    Subclasses implement `consume` and usually `on_error`. `filters` lists the
    pre-checks run before `consume`, in order: either names of methods on the
    consumer or standalone callables taking (envelope, info). Every hook may be
    a plain function or a coroutine function.

    Any hook may call `exit_loop()` to stop the loop once the current message
    has been resolved.
    """

    filters: ClassVar[Sequence[Union[str, FilterFn]]] = ()

    def consume(self, envelope: Envelope, info: DeliveryInfo) -> Any:
        raise NotImplementedError

    def on_error(self, error: Exception, envelope: Envelope, info: DeliveryInfo) -> Policy | str:
        """Default: stop the loop and leave the message on the queue."""
        return Policy.ABORT

    def named_filters(self) -> list[tuple[str, FilterFn]]:
        resolved: list[tuple[str, FilterFn]] = []
        for entry in self.filters:
            if isinstance(entry, str):
                fn = getattr(self, entry, None)
                if not callable(fn):
                    raise TypeError(f"filter {entry!r} is not a method of {type(self).__name__}")
                resolved.append((entry, fn))
            elif callable(entry):
                resolved.append((getattr(entry, "__name__", repr(entry)), entry))
            else:
                raise TypeError(f"invalid filter entry: {entry!r}")
        return resolved

    def exit_loop(self) -> None:
        state = current_loop_state()
        if state is None:
            logger.warning("exit_loop() called on {} outside a running loop", type(self).__name__)
            return
        state.request_termination()
        _log("termination_requested", consumer=type(self).__name__)
