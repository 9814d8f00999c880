"""
Structured error types for replcheck.

Every failure the harness can observe falls into one of a small number of
kinds. Each kind decides what the history analysis is allowed to conclude
about the operation that hit it, so the hierarchy is part of the
correctness contract and not just a logging convenience.

Manifesto:
    - **Typed kinds:** One class per failure kind, never a bare Exception
    - **Explicit outcome semantics:** Each kind knows whether the operation
      definitely did not happen (fail) or may have happened (info)
    - **Rich context:** Errors carry node, table, key and driver error codes
    - **Error chaining:** The driver exception is always kept as the cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      ReplCheckError                              │
        │            (category, definite, context, cause)                  │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  Definite (op did not happen)     Indefinite (op may have)       │
        │  ───────────────────────────      ─────────────────────────      │
        │  InjectedAbort      (ABORT)       CommunicationError (COMMS)     │
        │  ConflictError      (CONFLICT)    IndeterminateError             │
        │  UnavailableError   (UNAVAILABLE)                                │
        │                                                                  │
        │  Fatal (propagate, never an outcome)                             │
        │  ──────────────────────────────────                              │
        │  MalformedInputError   InvariantViolationError                   │
        │  ConfigError           RecoveryError                             │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ConflictError("Deadlock found", reason="deadlock")
    >>> err.definite
    True
    >>> err.to_dict()["category"]
    'CONFLICT'

Tags:
    error-handling, exception-hierarchy, outcome-semantics, replcheck

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Failure kinds for classification and routing.

    The first five categories are produced by the outcome classifier from
    database failures and injected aborts. The remaining ones belong to the
    harness itself and are never converted into an operation outcome.

    Attributes:
        ABORT: Abort injected by the harness after a transaction's body
        CONFLICT: Deadlock or serialization rollback
        UNAVAILABLE: Read-only secondary, or a peer still joining/recovering
        COMMUNICATION: Network partition, timeout, lost connection
        INDETERMINATE: Connection lost while committing or rolling back
        MALFORMED: Unparseable GTID set text
        INVARIANT: A state that correct concurrent semantics cannot reach
        CONFIG: Missing or invalid settings
        RECOVERY: Cluster recovery could not complete
        INTERNAL: Bugs, unexpected state
    """

    ABORT = "ABORT"
    CONFLICT = "CONFLICT"
    UNAVAILABLE = "UNAVAILABLE"
    COMMUNICATION = "COMMUNICATION"
    INDETERMINATE = "INDETERMINATE"

    MALFORMED = "MALFORMED"
    INVARIANT = "INVARIANT"
    CONFIG = "CONFIG"
    RECOVERY = "RECOVERY"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that were set show up in ``to_dict()``; anything else goes
    in ``metadata``.
    """

    node: str | None = None
    table: str | None = None
    key: Any = None
    errno: int | None = None
    sqlstate: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["node", "table", "key", "errno", "sqlstate"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ReplCheckError(Exception):
    """
    Base exception for all replcheck errors.

    Carries:
    - **category:** ErrorCategory for classification
    - **reason:** short machine-readable reason recorded in the history
      (``deadlock``, ``super-read-only``, ``comms`` ...)
    - **definite:** True when the failed operation certainly had no effect
    - **context:** ErrorContext with structured metadata
    - **cause:** the underlying driver exception, also set as ``__cause__``

    Subclasses set ``default_category``, ``default_reason`` and
    ``definite``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_reason: str = "internal"
    definite: bool = True

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ReplCheckError:
        """
        Add context to this error (fluent API).

        Usage:
            raise InvariantViolationError("upsert failed").with_context(
                table="txn0", key=3
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "reason": self.reason,
            "category": self.category.value,
            "definite": self.definite,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, reason={self.reason})"


# =============================================================================
# DEFINITE FAILURES (operation did not take effect)
# =============================================================================


class InjectedAbort(ReplCheckError):
    """Abort raised on purpose at the end of a transaction body."""

    default_category = ErrorCategory.ABORT
    default_reason = "abort"

    def __init__(self, message: str = "injected abort", **kwargs: Any):
        super().__init__(message, **kwargs)


class ConflictError(ReplCheckError):
    """Deadlock or serialization failure; the server rolled the transaction back."""

    default_category = ErrorCategory.CONFLICT
    default_reason = "rollback"


class UnavailableError(ReplCheckError):
    """The node refused the operation: read-only, or schema not there yet."""

    default_category = ErrorCategory.UNAVAILABLE
    default_reason = "unavailable"


# =============================================================================
# INDEFINITE FAILURES (operation may or may not have taken effect)
# =============================================================================


class CommunicationError(ReplCheckError):
    """Network partition, socket timeout or lost connection mid-request."""

    default_category = ErrorCategory.COMMUNICATION
    default_reason = "comms"
    definite = False


class IndeterminateError(ReplCheckError):
    """The connection dropped while a commit or rollback was in flight.

    ``interrupted`` is the error the transaction body raised when the lost
    rollback was cleaning up after it; None for a lost commit.
    """

    default_category = ErrorCategory.INDETERMINATE
    default_reason = "indeterminate"
    definite = False

    def __init__(
        self, message: str, *, interrupted: BaseException | None = None, **kwargs: Any
    ):
        super().__init__(message, **kwargs)
        self.interrupted = interrupted


# =============================================================================
# FATAL ERRORS (never collapsed into an outcome)
# =============================================================================


class MalformedInputError(ReplCheckError):
    """GTID set text that does not follow the grammar."""

    default_category = ErrorCategory.MALFORMED
    default_reason = "malformed"

    def __init__(self, message: str, *, text: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.text = text


class InvariantViolationError(ReplCheckError):
    """
    A state that correct concurrent semantics cannot produce.

    Raised when the update-then-insert upsert finds no row to update, fails
    to insert because the row exists, and then still finds no row to
    update. Swallowing this would record a write that never happened.
    """

    default_category = ErrorCategory.INVARIANT
    default_reason = "upsert-failed"


class ConfigError(ReplCheckError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_reason = "config"


class RecoveryError(ReplCheckError):
    """Cluster recovery aborted; the caller must re-invoke it."""

    default_category = ErrorCategory.RECOVERY
    default_reason = "recovery-failed"


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ReplCheckError",
    "InjectedAbort",
    "ConflictError",
    "UnavailableError",
    "CommunicationError",
    "IndeterminateError",
    "MalformedInputError",
    "InvariantViolationError",
    "ConfigError",
    "RecoveryError",
]
