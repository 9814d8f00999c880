"""
Operations and the JSON-lines history they are recorded in.

Each line is one event::

    {"index": 0, "time": 1200, "process": 3, "type": "invoke", "f": "txn",
     "value": [["r", 4, null], ["append", 4, 7]]}
    {"index": 1, "time": 9100, "process": 3, "type": "ok", "f": "txn",
     "value": [["r", 4, [1, 2]], ["append", 4, 7]]}
    {"index": 2, ..., "type": "fail", ..., "error": "deadlock"}

``time`` is nanoseconds since the history was created.
"""

from __future__ import annotations

import json
import threading
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, TextIO

from replcheck.core.outcome import Ok, Outcome


@dataclass(frozen=True, slots=True)
class MicroOp:
    """One step of a transaction: ``r``, ``append`` or ``w`` on a key."""

    f: str
    key: Any
    value: Any = None

    @property
    def is_read(self) -> bool:
        return self.f == "r"

    def to_list(self) -> list[Any]:
        return [self.f, self.key, self.value]

    @classmethod
    def from_list(cls, data: list[Any]) -> MicroOp:
        f, key, value = data
        return cls(f, key, value)


@dataclass(frozen=True)
class Operation:
    """An invocation or completion event for one process."""

    process: int
    type: str
    value: list[MicroOp] = field(default_factory=list)
    f: str = "txn"
    error: Any = None
    index: int | None = None
    time: int | None = None

    @classmethod
    def invoke(cls, process: int, txn: list[MicroOp]) -> Operation:
        return cls(process=process, type="invoke", value=list(txn))

    def complete(self, outcome: Outcome) -> Operation:
        """Completion event for this invocation."""
        if isinstance(outcome, Ok):
            return replace(
                self, type=outcome.type, value=list(outcome.value), index=None, time=None
            )
        return replace(
            self,
            type=outcome.type,
            error=outcome.reason.to_value(),
            index=None,
            time=None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "index": self.index,
            "time": self.time,
            "process": self.process,
            "type": self.type,
            "f": self.f,
            "value": [m.to_list() for m in self.value],
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class History:
    """Thread-safe, append-only event log.

    Events are kept in memory and, when ``sink`` is given, written to it
    as JSON lines as they are recorded.
    """

    def __init__(self, sink: TextIO | None = None):
        self._sink = sink
        self._lock = threading.Lock()
        self._ops: list[Operation] = []
        self._origin = time.monotonic_ns()

    def record(self, op: Operation) -> Operation:
        with self._lock:
            op = replace(
                op,
                index=len(self._ops),
                time=time.monotonic_ns() - self._origin,
            )
            self._ops.append(op)
            if self._sink is not None:
                self._sink.write(json.dumps(op.to_dict()) + "\n")
                self._sink.flush()
        return op

    @property
    def ops(self) -> list[Operation]:
        with self._lock:
            return list(self._ops)

    def summary(self) -> dict[str, int]:
        """Count of events by type."""
        return dict(Counter(op.type for op in self.ops))

    def __len__(self) -> int:
        with self._lock:
            return len(self._ops)


__all__ = [
    "MicroOp",
    "Operation",
    "History",
]
