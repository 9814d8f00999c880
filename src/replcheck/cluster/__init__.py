"""
Cluster administration: restart permits, recovery, deployments.

Architecture::

    permits.py       RestartPermits, DeploymentContext
    admin.py         group replication statements over one session
    recovery.py      ClusterRecovery (re-seed a group that lost its primary)
    config_files.py  my.cnf fragments rendered from templates/
    deployment.py    SingleNode / GroupReplication / FaultyFilesystem
"""

from .config_files import GroupReplicationOptions, render_common, render_gr, server_id
from .deployment import (
    FaultyFilesystemDeployment,
    GroupReplicationDeployment,
    LazyFS,
    MySQLService,
    NodeControl,
    SingleNodeDeployment,
    build_deployment,
    discover_primaries,
    setup_cluster,
)
from .permits import DeploymentContext, RestartPermits, majority, restart_capacity
from .recovery import ClusterRecovery, RecoveryReport, recover_cluster

__all__ = [
    "GroupReplicationOptions",
    "render_common",
    "render_gr",
    "server_id",
    "FaultyFilesystemDeployment",
    "GroupReplicationDeployment",
    "LazyFS",
    "MySQLService",
    "NodeControl",
    "SingleNodeDeployment",
    "build_deployment",
    "discover_primaries",
    "setup_cluster",
    "DeploymentContext",
    "RestartPermits",
    "majority",
    "restart_capacity",
    "ClusterRecovery",
    "RecoveryReport",
    "recover_cluster",
]
