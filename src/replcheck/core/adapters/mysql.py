"""MySQL connector.

Uses ``mysql.connector`` from the ``mysql-connector-python`` package.
MySQL uses **format** (``%s``) placeholder style.

Sessions are opened in autocommit mode so single-statement operations
commit on their own; ``MySQLSession.transaction()`` starts an explicit
transaction at a chosen isolation level. Connections report *matched*
rows (``FOUND_ROWS``) for UPDATE statements, so an update that rewrites a
row with its current value still counts as having found the row.

A connection lost while ``COMMIT`` or ``ROLLBACK`` is in flight leaves the
transaction's fate unknown; it is re-raised as
:class:`~replcheck.core.errors.IndeterminateError`. A lost rollback carries
the body's error as ``interrupted`` so the classifier can still treat a
fatal body error as fatal. Any other rollback failure is logged and the
body's error propagates.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Sequence

import mysql.connector
from mysql.connector import errors as mysql_errors
from mysql.connector.constants import ClientFlag

from replcheck.core.config.components import Isolation
from replcheck.core.errors import CommunicationError, IndeterminateError
from replcheck.core.logging import get_logger

from .types import NodeConfig, TimeoutPolicy

logger = get_logger(__name__)

# Client-side error numbers meaning the request never got an answer.
CR_CONNECTION_ERROR = 2002
CR_CONN_HOST_ERROR = 2003
CR_SERVER_GONE_ERROR = 2006
CR_SERVER_LOST = 2013
CR_SERVER_LOST_EXTENDED = 2055

COMMUNICATION_ERRNOS = frozenset(
    {
        CR_CONNECTION_ERROR,
        CR_CONN_HOST_ERROR,
        CR_SERVER_GONE_ERROR,
        CR_SERVER_LOST,
        CR_SERVER_LOST_EXTENDED,
    }
)


def is_link_failure(error: BaseException) -> bool:
    """True when ``error`` means the connection to the server was lost."""
    if isinstance(error, mysql_errors.Error):
        return error.errno in COMMUNICATION_ERRNOS
    return isinstance(error, (TimeoutError, ConnectionError))


class MySQLSession:
    """One autocommit connection to one node."""

    def __init__(self, node: str, conn: Any):
        self.node = node
        self._conn = conn
        self._in_transaction = False

    @property
    def raw(self) -> Any:
        """The underlying ``mysql.connector`` connection."""
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]] | int:
        """Run one statement; rows for queries, matched row count otherwise."""
        cursor = self._conn.cursor(dictionary=True)
        try:
            cursor.execute(sql, tuple(params))
            if cursor.with_rows:
                return cursor.fetchall()
            return cursor.rowcount
        finally:
            cursor.close()

    @contextmanager
    def transaction(self, isolation: Isolation) -> Iterator[MySQLSession]:
        """Transaction context manager at the given isolation level."""
        self._conn.start_transaction(isolation_level=isolation.sql)
        self._in_transaction = True
        try:
            yield self
        except BaseException as body_error:
            self._in_transaction = False
            self._rollback(body_error)
            raise
        self._in_transaction = False
        self._commit()

    def _commit(self) -> None:
        try:
            self._conn.commit()
        except mysql_errors.Error as e:
            if is_link_failure(e):
                raise IndeterminateError(
                    "Communications link failure during commit",
                    reason="link-failure-during-commit",
                    cause=e,
                ).with_context(node=self.node, errno=e.errno) from e
            raise

    def _rollback(self, body_error: BaseException) -> None:
        """Roll back after ``body_error``; a failed rollback never loses it."""
        try:
            self._conn.rollback()
        except mysql_errors.Error as e:
            logger.warning(
                "session.rollback_failed",
                node=self.node,
                errno=e.errno,
                error=str(e),
                during=type(body_error).__name__,
            )
            if is_link_failure(e) and isinstance(body_error, Exception):
                raise IndeterminateError(
                    "Communications link failure during rollback",
                    reason="link-failure-during-rollback",
                    cause=e,
                    interrupted=body_error,
                ).with_context(node=self.node, errno=e.errno) from e

    def close(self) -> None:
        """Close the connection. Errors while closing a dead socket are ignored."""
        try:
            self._conn.close()
        except mysql_errors.Error as e:
            logger.debug("session.close_failed", node=self.node, error=str(e))

    def __enter__(self) -> MySQLSession:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class MySQLConnector:
    """Opens :class:`MySQLSession` objects to cluster nodes.

    Example:
        connector = MySQLConnector(user="replcheck", password="replcheckpw")
        with connector.await_open("n1") as session:
            session.execute("SELECT @@GLOBAL.GTID_EXECUTED")
    """

    def __init__(
        self,
        port: int = 3306,
        user: str = "replcheck",
        password: str = "replcheckpw",
        *,
        database: str | None = None,
        timeouts: TimeoutPolicy | None = None,
        retry_interval: float = 0.5,
        log_interval: float = 10.0,
        await_timeout: float = 60.0,
    ):
        self._port = port
        self._user = user
        self._password = password
        self._database = database
        self._timeouts = timeouts or TimeoutPolicy()
        self._retry_interval = retry_interval
        self._log_interval = log_interval
        self._await_timeout = await_timeout

    @classmethod
    def from_settings(cls, settings: Any, *, database: str | None = None) -> MySQLConnector:
        return cls(
            port=settings.port,
            user=settings.user,
            password=settings.password,
            database=database,
            timeouts=settings.client_timeouts(),
            retry_interval=settings.await_retry_interval,
            log_interval=settings.await_log_interval,
            await_timeout=settings.await_timeout,
        )

    def node_config(self, node: str) -> NodeConfig:
        return NodeConfig(
            host=node,
            port=self._port,
            user=self._user,
            password=self._password,
            database=self._database,
        )

    def open(self, node: str, timeouts: TimeoutPolicy | None = None) -> MySQLSession:
        """Open a session to ``node``.

        ``connection_timeout`` bounds both the TCP connect and every socket
        read, so the policy's socket timeout is what the driver receives.
        """
        timeouts = timeouts or self._timeouts
        config = self.node_config(node)
        kwargs: dict[str, Any] = {
            "host": config.host,
            "port": config.port,
            "user": config.user,
            "password": config.password,
            "connection_timeout": max(timeouts.connect_timeout, timeouts.socket_timeout),
            "autocommit": True,
            "client_flags": [ClientFlag.FOUND_ROWS],
        }
        if config.database:
            kwargs["database"] = config.database
        conn = mysql.connector.connect(**kwargs)
        return MySQLSession(node, conn)

    def await_open(self, node: str, timeouts: TimeoutPolicy | None = None) -> MySQLSession:
        """Wait for ``node`` to accept connections and answer a query.

        Retries every ``retry_interval`` seconds, logging every
        ``log_interval``; gives up with :class:`CommunicationError` after
        ``await_timeout``.
        """
        deadline = time.monotonic() + self._await_timeout
        next_log = time.monotonic() + self._log_interval
        while True:
            session = None
            try:
                session = self.open(node, timeouts)
                session.execute("SELECT UUID()")
                return session
            except (mysql_errors.Error, OSError) as e:
                if session is not None:
                    session.close()
                now = time.monotonic()
                if now >= deadline:
                    raise CommunicationError(
                        f"Timed out waiting for MySQL on {node}",
                        cause=e,
                    ).with_context(node=node) from e
                if now >= next_log:
                    logger.info("connector.waiting_for_mysql", node=node, error=str(e))
                    next_log = now + self._log_interval
                time.sleep(self._retry_interval)


__all__ = [
    "COMMUNICATION_ERRNOS",
    "is_link_failure",
    "MySQLSession",
    "MySQLConnector",
]
