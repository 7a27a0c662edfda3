"""Error policies a consumer returns from `on_error`."""
from __future__ import annotations

from enum import Enum
from typing import Any


class Policy(str, Enum):
    IGNORE = "ignore"
    REQUEUE = "requeue"
    ABORT = "abort"
    UNRECOGNIZED = "unrecognized"

    @property
    def is_fatal(self) -> bool:
        return self in (Policy.ABORT, Policy.UNRECOGNIZED)

    @classmethod
    def classify(cls, value: Any) -> "Policy":
        """Map an `on_error` return value onto a policy.

        Anything outside ignore/requeue/abort (including UNRECOGNIZED itself)
        comes back as UNRECOGNIZED.
        """
        if isinstance(value, Policy):
            return value if value in _KNOWN else cls.UNRECOGNIZED
        if isinstance(value, str):
            return _ALIASES.get(value.strip().lower(), cls.UNRECOGNIZED)
        return cls.UNRECOGNIZED


_KNOWN = frozenset({Policy.IGNORE, Policy.REQUEUE, Policy.ABORT})

_ALIASES: dict[str, Policy] = {
    "ignore": Policy.IGNORE,
    "requeue": Policy.REQUEUE,
    "abort": Policy.ABORT,
    "exit": Policy.ABORT,
}
