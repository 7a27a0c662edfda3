"""Runtime-level constants shared across modules."""
from __future__ import annotations


class STOP_REASON:
    TERMINATION_REQUESTED = "termination_requested"
    FATAL_CYCLE = "fatal_cycle"
    TRANSPORT_ERROR = "transport_error"
    STOP_SIGNAL = "stop_signal"
    MAX_CYCLES = "max_cycles"


class METADATA_DEFAULTS:
    PRODUCER = "test_producer"
    VERSION = 1
    ROUTING_KEY = "test.test"
