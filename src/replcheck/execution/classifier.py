"""
Outcome classifier: database failures -> ok / fail / info.

Every operation the executor runs ends in exactly one outcome. This module
owns the single table that decides which driver errors mean "definitely
did not happen" (fail), which mean "may have happened" (info), and which
the harness does not understand. Anything it does not understand is
re-raised untouched: guessing would corrupt the history analysis.

Lookup order for a ``mysql.connector`` error:

1. **Error number** (``errno``) -- the most stable identifier the driver
   exposes. Some numbers carry a message filter (1290 is raised for
   several server options; only the read-only ones match).
2. **SQLSTATE class** -- ``40`` (transaction rollback) and ``08``
   (connection exception).
3. **Message substring** -- only for errors the driver raises without a
   server error number (``errno`` of -1), such as "MySQL Connection not
   available" on a closed connection. Message text changes between driver
   versions, so nothing that has a number is matched this way.

Architecture::

    ┌────────────────────────┬──────────────────────┬─────────┐
    │ condition              │ error type           │ outcome │
    ├────────────────────────┼──────────────────────┼─────────┤
    │ injected abort         │ InjectedAbort        │ fail    │
    │ 1213 deadlock          │ ConflictError        │ fail    │
    │ 3101 / SQLSTATE 40xxx  │ ConflictError        │ fail    │
    │ 1049 unknown database  │ UnavailableError     │ fail    │
    │ 1146 no such table     │ UnavailableError     │ fail    │
    │ 1290 / 1836 read-only  │ UnavailableError     │ fail*   │
    │ connection closed      │ UnavailableError     │ fail    │
    │ 2002/2003/2006/2013/   │ CommunicationError   │ info    │
    │ 2055 / SQLSTATE 08xxx  │                      │         │
    │ lost during commit     │ IndeterminateError   │ info    │
    │ upsert exhausted       │ InvariantViolation   │ raise   │
    │ anything else          │ (unchanged)          │ raise   │
    └────────────────────────┴──────────────────────┴─────────┘
    * after a short backoff, to hammer secondaries less

Tags:
    classification, outcomes, mysql, error-codes, replcheck

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mysql.connector import errors as mysql_errors

from replcheck.core.adapters.mysql import COMMUNICATION_ERRNOS
from replcheck.core.errors import (
    CommunicationError,
    ConflictError,
    ErrorCategory,
    IndeterminateError,
    ReplCheckError,
    UnavailableError,
)
from replcheck.core.logging import get_logger
from replcheck.core.outcome import Ok, Outcome, outcome_for

logger = get_logger(__name__)

ER_BAD_DB_ERROR = 1049
ER_NO_SUCH_TABLE = 1146
ER_LOCK_DEADLOCK = 1213
ER_OPTION_PREVENTS_STATEMENT = 1290
ER_READ_ONLY_MODE = 1836
ER_TRANSACTION_ROLLBACK_DURING_COMMIT = 3101


@dataclass(frozen=True)
class ErrorRule:
    """One row of the classification table."""

    reason: str
    error_type: type[ReplCheckError]
    errnos: frozenset[int] = frozenset()
    message_filter: tuple[str, ...] = ()
    sqlstate_class: str | None = None
    fallback_patterns: tuple[str, ...] = ()
    backoff: bool = False

    def matches_errno(self, errno: int, message: str) -> bool:
        if errno not in self.errnos:
            return False
        if not self.message_filter:
            return True
        return any(f in message for f in self.message_filter)


RULES: tuple[ErrorRule, ...] = (
    ErrorRule(
        "deadlock",
        ConflictError,
        errnos=frozenset({ER_LOCK_DEADLOCK}),
    ),
    ErrorRule(
        "rollback",
        ConflictError,
        errnos=frozenset({ER_TRANSACTION_ROLLBACK_DURING_COMMIT}),
        sqlstate_class="40",
    ),
    ErrorRule(
        "unknown-db",
        UnavailableError,
        errnos=frozenset({ER_BAD_DB_ERROR}),
    ),
    ErrorRule(
        "table-does-not-exist",
        UnavailableError,
        errnos=frozenset({ER_NO_SUCH_TABLE}),
    ),
    ErrorRule(
        "super-read-only",
        UnavailableError,
        errnos=frozenset({ER_READ_ONLY_MODE}),
        backoff=True,
    ),
    ErrorRule(
        "super-read-only",
        UnavailableError,
        errnos=frozenset({ER_OPTION_PREVENTS_STATEMENT}),
        message_filter=("super-read-only", "read-only", "read_only"),
        backoff=True,
    ),
    ErrorRule(
        "connection-closed",
        UnavailableError,
        fallback_patterns=(
            "Connection not available",
            "No operations allowed after connection closed",
        ),
    ),
    ErrorRule(
        "comms",
        CommunicationError,
        errnos=COMMUNICATION_ERRNOS,
        sqlstate_class="08",
        fallback_patterns=(
            "Lost connection to MySQL server",
            "MySQL server has gone away",
            "Communications link failure",
        ),
    ),
)

# Categories that become an outcome. Everything else is fatal.
OUTCOME_CATEGORIES = frozenset(
    {
        ErrorCategory.ABORT,
        ErrorCategory.CONFLICT,
        ErrorCategory.UNAVAILABLE,
        ErrorCategory.COMMUNICATION,
        ErrorCategory.INDETERMINATE,
    }
)


class OutcomeClassifier:
    """
    Converts exceptions raised by one operation into its outcome.

    Example:
        classifier = OutcomeClassifier(read_only_backoff=0.1)
        outcome = classifier.run(lambda: executor.execute(session, txn))
    """

    def __init__(
        self,
        rules: tuple[ErrorRule, ...] = RULES,
        *,
        read_only_backoff: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._rules = rules
        self._read_only_backoff = read_only_backoff
        self._sleep = sleep

    def match(self, error: BaseException) -> ErrorRule | None:
        """Find the table row for a driver or OS error, or None."""
        if isinstance(error, mysql_errors.Error):
            errno = error.errno if error.errno is not None else -1
            message = error.msg or str(error)
            if errno > 0:
                for rule in self._rules:
                    if rule.matches_errno(errno, message):
                        return rule
            sqlstate = error.sqlstate or ""
            for rule in self._rules:
                if rule.sqlstate_class and sqlstate.startswith(rule.sqlstate_class):
                    return rule
            if errno <= 0:
                for rule in self._rules:
                    if any(p in message for p in rule.fallback_patterns):
                        return rule
            return None

        if isinstance(error, (TimeoutError, ConnectionError)):
            for rule in self._rules:
                if rule.error_type is CommunicationError:
                    return rule
        return None

    def classify(self, error: BaseException) -> ReplCheckError | None:
        """
        Map ``error`` to a typed :class:`ReplCheckError`, or None if unknown.

        Errors that are already ReplCheckErrors are returned as-is.
        """
        if isinstance(error, ReplCheckError):
            return error
        rule = self.match(error)
        if rule is None:
            return None
        classified = rule.error_type(str(error), reason=rule.reason, cause=error)
        if isinstance(error, mysql_errors.Error):
            classified.with_context(errno=error.errno, sqlstate=error.sqlstate)
        return classified

    def outcome(self, error: BaseException) -> Outcome:
        """
        Outcome for a failed operation; re-raises what it cannot classify.

        Must be called while ``error`` is being handled so a re-raise keeps
        its traceback. A rollback lost after a fatal or unrecognized error
        re-raises that error instead of reporting the lost rollback.
        """
        if isinstance(error, IndeterminateError) and error.interrupted is not None:
            interrupted = self.classify(error.interrupted)
            if interrupted is None or interrupted.category not in OUTCOME_CATEGORIES:
                logger.warning(
                    "classifier.rollback_lost_after_fatal_error",
                    error_type=type(error.interrupted).__name__,
                    error=str(error.interrupted),
                )
                raise error.interrupted
        classified = self.classify(error)
        if classified is None:
            logger.warning(
                "classifier.unrecognized_error",
                error_type=type(error).__name__,
                error=str(error),
            )
            raise error
        if classified.category not in OUTCOME_CATEGORIES:
            raise error
        if classified.reason == "super-read-only" and self._read_only_backoff > 0:
            # Probably a secondary. Back off a little, but keep probing it
            # often enough to observe stale reads.
            self._sleep(self._read_only_backoff)
        return outcome_for(classified)

    def run(self, body: Callable[[], Any]) -> Outcome:
        """Run ``body``; Ok(result) on success, else the classified outcome."""
        try:
            return Ok(body())
        except Exception as e:
            return self.outcome(e)


__all__ = [
    "ErrorRule",
    "RULES",
    "OUTCOME_CATEGORIES",
    "OutcomeClassifier",
]
