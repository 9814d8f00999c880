"""
Enumerations for the pluggable dimensions of a run.

Each enum value is the spelling accepted on the command line and in
``REPLCHECK_*`` environment variables.
"""

from __future__ import annotations

from enum import Enum


class WorkloadName(str, Enum):
    """Transactional workloads the executor knows how to run."""

    LIST_APPEND = "list-append"
    RW_REGISTER = "rw-register"


class Isolation(str, Enum):
    """Transaction isolation levels MySQL accepts."""

    READ_UNCOMMITTED = "read-uncommitted"
    READ_COMMITTED = "read-committed"
    REPEATABLE_READ = "repeatable-read"
    SERIALIZABLE = "serializable"

    @property
    def sql(self) -> str:
        """Spelling for ``SET TRANSACTION ISOLATION LEVEL``."""
        return self.value.replace("-", " ").upper()


class ConsistencyModel(str, Enum):
    """Consistency models the history is expected to satisfy."""

    STRICT_SERIALIZABLE = "strict-serializable"
    SERIALIZABLE = "serializable"
    STRONG_SNAPSHOT_ISOLATION = "strong-snapshot-isolation"
    SNAPSHOT_ISOLATION = "snapshot-isolation"
    REPEATABLE_READ = "repeatable-read"
    READ_COMMITTED = "read-committed"
    READ_UNCOMMITTED = "read-uncommitted"


SHORT_NAMES: dict[str, str] = {
    "strict-serializable": "Strong-1SR",
    "serializable": "S",
    "strong-snapshot-isolation": "Strong-SI",
    "snapshot-isolation": "SI",
    "repeatable-read": "RR",
    "read-committed": "RC",
    "read-uncommitted": "RU",
}


class LockingMode(str, Enum):
    """Locking clause applied to reads of keys the transaction writes later."""

    NONE = "none"
    SHARE = "share"
    UPDATE = "update"

    @property
    def clause(self) -> str:
        match self:
            case LockingMode.SHARE:
                return " FOR SHARE"
            case LockingMode.UPDATE:
                return " FOR UPDATE"
            case _:
                return ""


class WriteStrategy(str, Enum):
    """How a write reaches the table."""

    ON_DUPLICATE_KEY = "on-dup-key"
    UPDATE_INSERT = "update-insert"


__all__ = [
    "WorkloadName",
    "Isolation",
    "ConsistencyModel",
    "SHORT_NAMES",
    "LockingMode",
    "WriteStrategy",
]
