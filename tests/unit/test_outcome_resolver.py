"""Unit tests for OutcomeResolver: the filter outcome x consume result x policy table."""
from __future__ import annotations

import pytest

from hophop.app.application.filter_chain import FilterOutcome
from hophop.app.application.outcome_resolver import (
    BrokerAction,
    ConsumeResult,
    OutcomeResolver,
    Resolution,
)
from hophop.app.domain.loop_state import LoopState
from hophop.app.domain.policy import Policy

ACK = BrokerAction.ACKNOWLEDGE
REQUEUE = BrokerAction.REQUEUE


@pytest.mark.parametrize(
    "filter_outcome, consume_result, policy, action, terminate, fatal",
    [
        (FilterOutcome.HALTED, ConsumeResult.SKIPPED, None, ACK, False, False),
        (FilterOutcome.PROCEED, ConsumeResult.SUCCESS, None, ACK, False, False),
        (FilterOutcome.PROCEED, ConsumeResult.FAILURE, Policy.IGNORE, ACK, False, False),
        (FilterOutcome.PROCEED, ConsumeResult.FAILURE, Policy.REQUEUE, REQUEUE, False, False),
        (FilterOutcome.PROCEED, ConsumeResult.FAILURE, Policy.ABORT, REQUEUE, True, True),
        (FilterOutcome.PROCEED, ConsumeResult.FAILURE, Policy.UNRECOGNIZED, REQUEUE, True, True),
    ],
)
def test_resolution_table(filter_outcome, consume_result, policy, action, terminate, fatal):
    resolution = OutcomeResolver().resolve(filter_outcome, consume_result, policy)

    assert resolution.action is action
    assert resolution.terminate is terminate
    assert resolution.fatal is fatal


def test_resolution_is_a_pure_function_of_inputs():
    resolver = OutcomeResolver()
    first = resolver.resolve(FilterOutcome.PROCEED, ConsumeResult.FAILURE, Policy.ABORT)
    second = resolver.resolve(FilterOutcome.PROCEED, ConsumeResult.FAILURE, Policy.ABORT)

    assert first == second


def test_failure_without_policy_fails_safe():
    resolution = OutcomeResolver().resolve(FilterOutcome.PROCEED, ConsumeResult.FAILURE, None)

    assert resolution == Resolution(REQUEUE, terminate=True, fatal=True, policy=Policy.UNRECOGNIZED)


def test_halt_action_can_be_requeue():
    resolver = OutcomeResolver(halt_action=BrokerAction.REQUEUE)
    resolution = resolver.resolve(FilterOutcome.HALTED, ConsumeResult.SKIPPED)

    assert resolution.action is REQUEUE
    assert resolution.terminate is False
    assert resolution.fatal is False


def test_inconsistent_inputs_rejected():
    resolver = OutcomeResolver()
    with pytest.raises(ValueError):
        resolver.resolve(FilterOutcome.HALTED, ConsumeResult.SUCCESS)
    with pytest.raises(ValueError):
        resolver.resolve(FilterOutcome.PROCEED, ConsumeResult.SKIPPED)


def test_apply_to_records_only_what_the_resolution_demands():
    state = LoopState()
    Resolution(ACK).apply_to(state)
    assert state.should_stop is False

    Resolution(REQUEUE, terminate=True, fatal=True).apply_to(state)
    assert state.termination_requested is True
    assert state.last_cycle_fatal is True


def test_apply_to_keeps_explicit_termination_request():
    state = LoopState()
    state.request_termination()

    Resolution(ACK).apply_to(state)

    assert state.termination_requested is True
    assert state.last_cycle_fatal is False
