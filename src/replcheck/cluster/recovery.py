"""
Cluster recovery: re-seed a group replication cluster that lost its primary.

Group replication cannot restart a fully stopped group by itself. Someone
has to visit every member, stop group replication, collect what each
member knows (executed plus certified transactions), pick the member that
knows the most as the new seed, bootstrap the group there and have the
others join it one at a time.

Manifesto:
    - **One at a time:** a process-wide lock serializes recoveries
    - **All or nothing:** any member that cannot be reached or queried
      aborts the recovery with RecoveryError; the caller re-invokes
    - **No leaks:** every recovery connection is closed on every exit path
    - **Slow is expected:** STOP GROUP_REPLICATION can block for minutes,
      so recovery connections use a very large socket timeout

Architecture::

    recover()
      ├── lock
      ├── open every node in parallel        (await_open, recovery timeouts)
      ├── per node, in parallel:
      │     STOP GROUP_REPLICATION
      │     gtid_executed ∪ certified_transactions
      ├── primary = most_recent_node(progress)
      ├── bootstrap_group(primary)
      ├── start_group_replication(other)     (sequential, sorted)
      └── close everything

Tags:
    recovery, group-replication, gtid, bootstrap, replcheck

Doc-Types:
    - API Reference
    - Operations Runbook
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from functools import partial
from typing import Any, TypeVar

from mysql.connector import errors as mysql_errors

from replcheck.core.adapters.types import TimeoutPolicy
from replcheck.core.errors import MalformedInputError, RecoveryError, ReplCheckError
from replcheck.core.logging import get_logger
from replcheck.core.protocols import Connector, Session
from replcheck.progress import ProgressSet, most_recent_node

from . import admin

logger = get_logger(__name__)

T = TypeVar("T")

_RECOVERY_LOCK = threading.Lock()

# Failures that abort a recovery. Malformed GTID text is not among them:
# it is a harness bug and propagates unchanged.
_RECOVERABLE = (mysql_errors.Error, OSError, ReplCheckError)


@dataclass
class RecoveryReport:
    """What a completed recovery found and did."""

    primary: str
    progress: dict[str, ProgressSet]
    joined: list[str] = field(default_factory=list)
    members: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary,
            "progress": {node: str(p) for node, p in sorted(self.progress.items())},
            "cardinality": {
                node: p.cardinality() for node, p in sorted(self.progress.items())
            },
            "joined": list(self.joined),
            "members": [dict(m) for m in self.members],
        }


class ClusterRecovery:
    """Recovers the group formed by ``nodes``.

    Example:
        recovery = ClusterRecovery.from_settings(settings, connector)
        report = recovery.recover()
        print(report.primary)
    """

    def __init__(
        self,
        connector: Connector,
        nodes: list[str],
        *,
        timeouts: TimeoutPolicy | None = None,
        lock: threading.Lock | None = None,
    ):
        self.connector = connector
        self.nodes = list(nodes)
        self.timeouts = timeouts or TimeoutPolicy(socket_timeout=1000.0)
        self._lock = lock or _RECOVERY_LOCK

    @classmethod
    def from_settings(cls, settings: Any, connector: Connector, **kwargs: Any) -> ClusterRecovery:
        return cls(
            connector,
            settings.nodes,
            timeouts=settings.recovery_timeouts(),
            **kwargs,
        )

    def recover(self) -> RecoveryReport:
        with self._lock:
            logger.info("recovery.started", nodes=self.nodes)
            sessions: dict[str, Session] = {}
            try:
                def open_node(node: str) -> None:
                    sessions[node] = self.connector.await_open(node, self.timeouts)

                self._parallel("open", open_node, self.nodes)
                logger.info("recovery.connections_established", nodes=sorted(sessions))

                progress = self._parallel(
                    "fetch_progress",
                    lambda node: self._stop_and_fetch(sessions[node]),
                    self.nodes,
                )
                for node, p in sorted(progress.items()):
                    logger.info(
                        "recovery.progress",
                        node=node,
                        gtids=str(p),
                        cardinality=p.cardinality(),
                    )

                primary = most_recent_node(progress)
                if primary is None:
                    raise RecoveryError("No nodes to recover")
                logger.info("recovery.primary_selected", primary=primary)

                report = RecoveryReport(primary=primary, progress=progress)
                self._step(primary, "bootstrap", lambda: admin.bootstrap_group(sessions[primary]))
                logger.info(
                    "recovery.bootstrapped",
                    primary=primary,
                    members=admin.members(sessions[primary]),
                )

                for node in sorted(self.nodes):
                    if node == primary:
                        continue
                    logger.info("recovery.joining", node=node)
                    self._step(node, "join", lambda: admin.start_group_replication(sessions[node]))
                    report.joined.append(node)

                report.members = admin.members(sessions[primary])
                logger.info("recovery.completed", primary=primary, members=report.members)
                return report
            finally:
                for session in sessions.values():
                    session.close()

    @staticmethod
    def _stop_and_fetch(session: Session) -> ProgressSet:
        admin.stop_group_replication(session)
        return admin.known_transactions(session)

    @staticmethod
    def _step(node: str, phase: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except MalformedInputError:
            raise
        except _RECOVERABLE as e:
            raise RecoveryError(
                f"Recovery failed during {phase} on {node}: {e}",
                cause=e,
            ).with_context(node=node, phase=phase) from e

    def _parallel(self, phase: str, fn: Callable[[str], T], nodes: list[str]) -> dict[str, T]:
        """Run ``fn(node)`` for every node at once; first failure aborts."""
        results: dict[str, T] = {}
        first_error: BaseException | None = None
        with ThreadPoolExecutor(
            max_workers=len(nodes) or 1,
            thread_name_prefix=f"recover-{phase}",
        ) as pool:
            futures = {
                pool.submit(self._step, node, phase, partial(fn, node)): node
                for node in nodes
            }
            for future in as_completed(futures):
                node = futures[future]
                try:
                    results[node] = future.result()
                except Exception as e:
                    logger.error("recovery.node_failed", node=node, phase=phase, error=str(e))
                    if first_error is None:
                        first_error = e
        if first_error is not None:
            raise first_error
        return results


def recover_cluster(settings: Any, connector: Connector) -> RecoveryReport:
    """Recover the cluster described by ``settings``."""
    return ClusterRecovery.from_settings(settings, connector).recover()


__all__ = [
    "RecoveryReport",
    "ClusterRecovery",
    "recover_cluster",
]
