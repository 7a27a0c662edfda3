"""Ordered pre-checks run before a consumer sees a message."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from hophop.app.application.consumer import Consumer, FilterFn, maybe_await
from hophop.app.domain.envelope import DeliveryInfo, Envelope


class FilterOutcome(str, Enum):
    PROCEED = "proceed"
    HALTED = "halted"


@dataclass(frozen=True)
class FilterResult:
    outcome: FilterOutcome
    halted_by: str | None = None

    @property
    def proceed(self) -> bool:
        return self.outcome is FilterOutcome.PROCEED


class FilterChain:
    """
    Runs filters in registration order and stops at the first one returning a falsy value.

    Termination requests made from inside a filter land on the loop state and do
    not change the chain's outcome. Exceptions raised by a filter propagate to
    the caller.
    """

    def __init__(self, filters: Sequence[tuple[str, FilterFn]] = ()) -> None:
        self._filters = list(filters)

    @classmethod
    def for_consumer(cls, consumer: Consumer) -> "FilterChain":
        return cls(consumer.named_filters())

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._filters]

    def __len__(self) -> int:
        return len(self._filters)

    async def run(self, envelope: Envelope, info: DeliveryInfo) -> FilterResult:
        for name, fn in self._filters:
            passed = await maybe_await(fn(envelope, info))
            if not passed:
                return FilterResult(FilterOutcome.HALTED, halted_by=name)
        return FilterResult(FilterOutcome.PROCEED)
