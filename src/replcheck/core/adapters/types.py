"""Connection parameters for cluster nodes."""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class TimeoutPolicy:
    """
    Socket-level timeouts for one connection.

    Exceeding ``socket_timeout`` on a request surfaces as a communication
    failure, which the classifier turns into an ``info`` outcome. Recovery
    connections use a much larger socket timeout because stopping group
    replication can block for minutes.
    """

    connect_timeout: float = 5.0
    socket_timeout: float = 10.0

    def with_socket_timeout(self, seconds: float) -> TimeoutPolicy:
        return replace(self, socket_timeout=seconds)


@dataclass(frozen=True)
class NodeConfig:
    """How to reach the MySQL server on a node."""

    host: str
    port: int = 3306
    user: str = "replcheck"
    password: str = "replcheckpw"
    database: str | None = None


__all__ = [
    "TimeoutPolicy",
    "NodeConfig",
]
