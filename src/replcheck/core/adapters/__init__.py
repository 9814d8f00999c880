"""Database connector -- sessions to the MySQL servers of a cluster.

Architecture::

    MySQLConnector (mysql.py)   opens MySQLSession objects per node
    MySQLSession   (mysql.py)   execute / transaction / close
    TimeoutPolicy  (types.py)   connect + socket timeouts per session
    NodeConfig     (types.py)   host / port / credentials

The driver is ``mysql-connector-python``.
"""

from .mysql import COMMUNICATION_ERRNOS, MySQLConnector, MySQLSession, is_link_failure
from .types import NodeConfig, TimeoutPolicy

__all__ = [
    "COMMUNICATION_ERRNOS",
    "MySQLConnector",
    "MySQLSession",
    "is_link_failure",
    "NodeConfig",
    "TimeoutPolicy",
]
