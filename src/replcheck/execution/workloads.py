"""
Workload definitions, schema setup and per-connection session state.

Two workloads share one table layout per partition::

    txn0 .. txn{table_count-1}
        id   INT PRIMARY KEY   -- the key
        sk   INT NOT NULL      -- same value as id; target of predicate reads
        val                    -- TEXT (list-append) or INT (rw-register)

``list-append`` stores a comma-joined list and appends with ``CONCAT``;
``rw-register`` overwrites an integer.
"""

from __future__ import annotations

import zlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mysql.connector import errors as mysql_errors

from replcheck.core.config.components import Isolation, WorkloadName
from replcheck.core.logging import get_logger
from replcheck.core.protocols import Session
from replcheck.execution.classifier import OutcomeClassifier

logger = get_logger(__name__)


def _encode_append(value: Any) -> str:
    return str(value)


def _decode_append(raw: Any) -> list[int] | None:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    return [int(v) for v in str(raw).split(",") if v != ""]


def _encode_register(value: Any) -> int:
    return int(value)


def _decode_register(raw: Any) -> int | None:
    if raw is None:
        return None
    return int(raw)


@dataclass(frozen=True)
class Workload:
    """How one workload lays out, writes and reads its rows."""

    name: WorkloadName
    database: str
    write_f: str
    val_ddl: str
    merge_sql: str
    encode: Callable[[Any], Any]
    decode: Callable[[Any], Any]

    def create_table_sql(self, table: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            f"id INT NOT NULL PRIMARY KEY, sk INT NOT NULL, {self.val_ddl})"
        )


LIST_APPEND = Workload(
    name=WorkloadName.LIST_APPEND,
    database="replcheck_append",
    write_f="append",
    val_ddl="val TEXT",
    merge_sql="CONCAT(val, ',', %s)",
    encode=_encode_append,
    decode=_decode_append,
)

RW_REGISTER = Workload(
    name=WorkloadName.RW_REGISTER,
    database="replcheck_register",
    write_f="w",
    val_ddl="val INT, INDEX (sk, val)",
    merge_sql="%s",
    encode=_encode_register,
    decode=_decode_register,
)

WORKLOADS: dict[WorkloadName, Workload] = {
    LIST_APPEND.name: LIST_APPEND,
    RW_REGISTER.name: RW_REGISTER,
}


def get_workload(name: WorkloadName | str) -> Workload:
    return WORKLOADS[WorkloadName(name)]


def table_for(key: Any, table_count: int) -> int:
    """Partition index for ``key``.

    Integers hash to themselves. Anything else uses CRC32 of its string
    form, which is stable across processes (``hash()`` of a str is not).
    """
    if isinstance(key, int) and not isinstance(key, bool):
        h = key
    else:
        h = zlib.crc32(str(key).encode("utf-8"))
    return h % table_count


def table_name(key: Any, table_count: int) -> str:
    return f"txn{table_for(key, table_count)}"


def _is_read_only(error: mysql_errors.Error) -> bool:
    rule = OutcomeClassifier().match(error)
    return rule is not None and rule.reason == "super-read-only"


def setup_schema(session: Session, workload: Workload, table_count: int) -> bool:
    """
    Create the workload's database and tables.

    Returns False when the node is a read-only secondary and nothing was
    created; the primary's DDL reaches it through replication.
    """
    try:
        session.execute(f"CREATE DATABASE IF NOT EXISTS {workload.database}")
        for i in range(table_count):
            session.execute(workload.create_table_sql(f"{workload.database}.txn{i}"))
    except mysql_errors.Error as e:
        if _is_read_only(e):
            logger.info("schema.skipped_read_only", node=session.node)
            return False
        raise
    logger.info(
        "schema.created",
        node=session.node,
        database=workload.database,
        tables=table_count,
    )
    return True


class ClientSession:
    """
    One worker's connection, opened and initialized lazily.

    States::

        Uninitialized --prepare()--> Ready --close()--> Uninitialized

    ``prepare()`` opens the connection if needed, selects the workload's
    database and sets the session isolation level. A failure leaves the
    session Uninitialized so the next operation tries again.
    """

    def __init__(
        self,
        node: str,
        opener: Callable[[str], Session],
        workload: Workload,
        isolation: Isolation,
    ):
        self.node = node
        self._opener = opener
        self._workload = workload
        self._isolation = isolation
        self._session: Session | None = None
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def prepare(self) -> Session:
        if self._ready and self._session is not None:
            return self._session
        if self._session is None:
            self._session = self._opener(self.node)
        self._session.execute(f"USE {self._workload.database}")
        self._session.execute(
            f"SET SESSION TRANSACTION ISOLATION LEVEL {self._isolation.sql}"
        )
        self._ready = True
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
        self._session = None
        self._ready = False


__all__ = [
    "Workload",
    "LIST_APPEND",
    "RW_REGISTER",
    "WORKLOADS",
    "get_workload",
    "table_for",
    "table_name",
    "setup_schema",
    "ClientSession",
]
