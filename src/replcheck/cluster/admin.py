"""
Group replication administration over a single session.

Thin wrappers around the statements used to set up, inspect and recover a
group. None of them catch errors; callers decide what a failure means.
"""

from __future__ import annotations

from typing import Any

from replcheck.core.logging import get_logger
from replcheck.core.protocols import Session
from replcheck.progress import ProgressSet, parse, union

logger = get_logger(__name__)

RECOVERY_CHANNEL = "group_replication_recovery"
APPLIER_CHANNEL = "group_replication_applier"

REPLICATION_GRANTS = (
    "REPLICATION SLAVE",
    "CONNECTION_ADMIN",
    "BACKUP_ADMIN",
    "GROUP_REPLICATION_STREAM",
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return str(value)


def _first_column(rows: list[dict[str, Any]]) -> list[str]:
    return [_text(next(iter(row.values()))) for row in rows if row]


def create_replication_user(session: Session, user: str, password: str) -> None:
    """Create the distributed-recovery user locally, outside the binlog.

    Native password auth; the default sha2 plugin would require TLS between
    members.
    """
    logger.info("admin.create_replication_user", node=session.node, user=user)
    session.execute("SET SQL_LOG_BIN=0")
    session.execute(
        f"CREATE USER {user}@'%' IDENTIFIED WITH mysql_native_password BY '{password}'"
    )
    for grant in REPLICATION_GRANTS:
        session.execute(f"GRANT {grant} ON *.* TO {user}@'%'")
    session.execute("FLUSH PRIVILEGES")
    session.execute("SET SQL_LOG_BIN=1")


def set_replication_source(session: Session, user: str, password: str) -> None:
    """Credentials this member uses for distributed recovery."""
    logger.info("admin.set_replication_source", node=session.node)
    session.execute(
        f"CHANGE REPLICATION SOURCE TO SOURCE_USER='{user}', SOURCE_PASSWORD='{password}'"
        f" FOR CHANNEL '{RECOVERY_CHANNEL}'"
    )


def stop_group_replication(session: Session) -> None:
    logger.info("admin.stop_group_replication", node=session.node)
    session.execute("STOP GROUP_REPLICATION")


def start_group_replication(session: Session) -> None:
    logger.info("admin.start_group_replication", node=session.node)
    session.execute("START GROUP_REPLICATION")


def bootstrap_group(session: Session) -> None:
    """Start a new group with this member as its only member. Primary only."""
    logger.info("admin.bootstrap_group", node=session.node)
    session.execute("SET GLOBAL group_replication_bootstrap_group=ON")
    try:
        start_group_replication(session)
    finally:
        session.execute("SET GLOBAL group_replication_bootstrap_group=OFF")


def gtid_executed(session: Session) -> ProgressSet:
    """Transactions this member has applied."""
    rows = session.execute("SELECT @@GLOBAL.GTID_EXECUTED")
    return union(*(parse(text) for text in _first_column(rows)))


def certified_transactions(session: Session) -> ProgressSet:
    """Transactions received on the applier channel, applied or not."""
    rows = session.execute(
        "SELECT received_transaction_set"
        " FROM performance_schema.replication_connection_status"
        f" WHERE channel_name = '{APPLIER_CHANNEL}'"
    )
    return union(*(parse(text) for text in _first_column(rows)))


def known_transactions(session: Session) -> ProgressSet:
    """Everything this member knows about: executed plus certified."""
    return union(gtid_executed(session), certified_transactions(session))


def members(session: Session) -> list[dict[str, Any]]:
    """The group membership table as seen by this member, lower-cased keys."""
    rows = session.execute("SELECT * FROM performance_schema.replication_group_members")
    return [{k.lower(): v for k, v in row.items()} for row in rows]


def primaries(session: Session) -> set[str]:
    """Hosts this member believes are primaries."""
    rows = session.execute(
        "SELECT MEMBER_HOST FROM performance_schema.replication_group_members"
        " WHERE MEMBER_ROLE = 'PRIMARY'"
    )
    return set(_first_column(rows))


__all__ = [
    "RECOVERY_CHANNEL",
    "APPLIER_CHANNEL",
    "REPLICATION_GRANTS",
    "create_replication_user",
    "set_replication_source",
    "stop_group_replication",
    "start_group_replication",
    "bootstrap_group",
    "gtid_executed",
    "certified_transactions",
    "known_transactions",
    "members",
    "primaries",
]
