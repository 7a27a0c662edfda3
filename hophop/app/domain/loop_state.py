"""Per-run state of the consumption loop.

The state of the run in progress is published through a context variable, so
hooks reach the loop that is driving them even when several loops share one
consumer instance on different asyncio tasks.
"""
from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass


@dataclass
class LoopState:
    """Created fresh for every run; owned by the loop for the run's duration."""

    termination_requested: bool = False
    last_cycle_fatal: bool = False
    cycles: int = 0
    stop_reason: str | None = None

    def request_termination(self) -> None:
        self.termination_requested = True

    def mark_fatal(self) -> None:
        self.last_cycle_fatal = True

    @property
    def should_stop(self) -> bool:
        return self.termination_requested or self.last_cycle_fatal


_current_loop_state: ContextVar[LoopState | None] = ContextVar("hophop_loop_state", default=None)


def current_loop_state() -> LoopState | None:
    return _current_loop_state.get()


def bind_loop_state(state: LoopState) -> Token[LoopState | None]:
    return _current_loop_state.set(state)


def reset_loop_state(token: Token[LoopState | None]) -> None:
    _current_loop_state.reset(token)
