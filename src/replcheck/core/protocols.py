"""
Protocol definitions shared across replcheck.

The executor, schema setup, group-replication admin and recovery all talk
to a node through the same narrow ``Session`` shape, so tests can drive
them with an in-memory fake and production uses
:class:`~replcheck.core.adapters.mysql.MySQLSession`.

Architecture::

    protocols.py
    ├── Session          one open connection to one node
    └── Connector        opens sessions to nodes

Tags:
    protocol, session, connector, replcheck, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol, Sequence, runtime_checkable

from replcheck.core.adapters.types import TimeoutPolicy
from replcheck.core.config.components import Isolation


@runtime_checkable
class Session(Protocol):
    """
    One connection to one node.

    ``execute`` returns the fetched rows (as dicts) for statements that
    produce a result set and the matched row count otherwise.
    ``transaction`` opens a transaction at the given isolation level,
    commits when the block exits normally and rolls back when it raises.
    Outside a transaction every statement autocommits.
    """

    node: str

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]] | int:
        ...

    def transaction(self, isolation: Isolation) -> AbstractContextManager[Session]:
        ...

    @property
    def in_transaction(self) -> bool:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Connector(Protocol):
    """Opens sessions to cluster nodes."""

    def open(self, node: str, timeouts: TimeoutPolicy | None = None) -> Session:
        ...

    def await_open(self, node: str, timeouts: TimeoutPolicy | None = None) -> Session:
        ...


__all__ = [
    "Session",
    "Connector",
]
