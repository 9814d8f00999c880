"""
Operation outcome envelope.

Every completed operation resolves to exactly one of three outcomes before
it is written to the history:

- ``Ok(value)``   the operation took effect and ``value`` is what it observed
- ``Fail(reason)`` the operation certainly did not take effect
- ``Info(reason)`` the operation may or may not have taken effect

Analysis treats ``Info`` as indeterminate, never as a confirmed non-event,
so anything the harness cannot stand behind must be ``Info``, and nothing
it cannot prove failed may be ``Fail``.

Examples:
    >>> outcome = Fail(Reason("deadlock", "Deadlock found when trying to get lock"))
    >>> outcome.type
    'fail'
    >>> match outcome:
    ...     case Ok(value):
    ...         print(value)
    ...     case Fail(reason) | Info(reason):
    ...         print(reason.kind)
    deadlock

Tags:
    outcome, history, ok-fail-info, replcheck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from replcheck.core.errors import ReplCheckError


@dataclass(frozen=True, slots=True)
class Reason:
    """Structured error reason recorded for fail/info outcomes."""

    kind: str
    message: str | None = None

    def to_value(self) -> Any:
        """History form: the bare kind, or ``[kind, message]``."""
        if self.message is None:
            return self.kind
        return [self.kind, self.message]

    @classmethod
    def from_error(cls, error: ReplCheckError) -> Reason:
        message = None
        if error.cause is not None:
            message = str(error.cause)
        elif error.message != error.reason:
            message = error.message
        return cls(error.reason, message)


@dataclass(frozen=True, slots=True)
class Ok:
    """The operation took effect."""

    value: Any

    type = "ok"

    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Fail:
    """The operation did not take effect."""

    reason: Reason

    type = "fail"

    def is_ok(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class Info:
    """The operation's effect is unknown."""

    reason: Reason

    type = "info"

    def is_ok(self) -> bool:
        return False


Outcome = Union[Ok, Fail, Info]


def outcome_for(error: ReplCheckError) -> Outcome:
    """Map a classified error to Fail (definite) or Info (indefinite)."""
    reason = Reason.from_error(error)
    if error.definite:
        return Fail(reason)
    return Info(reason)


__all__ = [
    "Reason",
    "Ok",
    "Fail",
    "Info",
    "Outcome",
    "outcome_for",
]
