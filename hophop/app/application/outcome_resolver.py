"""
Outcome resolution: turns the result of one cycle into a broker action.

    filter halted                 -> halt action (acknowledge by default)
    consume succeeded             -> acknowledge
    consume failed, IGNORE        -> acknowledge
    consume failed, REQUEUE       -> requeue
    consume failed, ABORT         -> requeue, terminate, fatal
    consume failed, UNRECOGNIZED  -> requeue, terminate, fatal

Explicit termination requests are not part of the resolution; they are
recorded on the loop state directly and combined by the loop.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hophop.app.application.filter_chain import FilterOutcome
from hophop.app.domain.loop_state import LoopState
from hophop.app.domain.policy import Policy


class BrokerAction(str, Enum):
    ACKNOWLEDGE = "acknowledge"
    REQUEUE = "requeue"


class ConsumeResult(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Resolution:
    action: BrokerAction
    terminate: bool = False
    fatal: bool = False
    policy: Policy | None = None

    def apply_to(self, state: LoopState) -> None:
        if self.terminate:
            state.request_termination()
        if self.fatal:
            state.mark_fatal()


class OutcomeResolver:
    def __init__(self, *, halt_action: BrokerAction = BrokerAction.ACKNOWLEDGE) -> None:
        self._halt_action = BrokerAction(halt_action)

    @property
    def halt_action(self) -> BrokerAction:
        return self._halt_action

    def resolve(
        self,
        filter_outcome: FilterOutcome,
        consume_result: ConsumeResult,
        policy: Policy | None = None,
    ) -> Resolution:
        if filter_outcome is FilterOutcome.HALTED:
            if consume_result is not ConsumeResult.SKIPPED:
                raise ValueError("consume must be skipped when a filter halted")
            return Resolution(self._halt_action)

        if consume_result is ConsumeResult.SKIPPED:
            raise ValueError("consume cannot be skipped when filters passed")
        if consume_result is ConsumeResult.SUCCESS:
            return Resolution(BrokerAction.ACKNOWLEDGE)

        policy = Policy.classify(policy)
        if policy is Policy.IGNORE:
            return Resolution(BrokerAction.ACKNOWLEDGE, policy=policy)
        if policy is Policy.REQUEUE:
            return Resolution(BrokerAction.REQUEUE, policy=policy)
        return Resolution(BrokerAction.REQUEUE, terminate=True, fatal=True, policy=policy)
