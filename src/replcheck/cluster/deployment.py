"""
Cluster deployments: one object per topology.

A deployment knows how to set a node up, tear it down, start, kill,
pause and resume its database, which nodes are primaries and which log
files to collect. Commands reach a node through :class:`NodeControl`;
how they get there (SSH, containers, a local shell) is the caller's
business.

Capabilities are separate protocols so a caller can ask only for what it
uses::

    Lifecycle         setup(node) / teardown(node)
    ProcessControl    start(node) / kill(node)
    PauseControl      pause(node) / resume(node)
    PrimaryDiscovery  primaries()
    LogFiles          log_files(node)

Topologies::

    SingleNodeDeployment         one server, no replication
    GroupReplicationDeployment   n servers in one replication group
    FaultyFilesystemDeployment   wraps either of the above; the data
                                 directory lives on a filesystem that drops
                                 unsynced writes when the node is killed

Group replication setup, run concurrently for every node by
:func:`setup_cluster`::

    configure (seed = first node only) -> restart -> create admin user
    ── barrier ──
    create replication user, set recovery source
    ── barrier ──
    bootstrap group                       (first node)
    ── barrier ──
    start group replication, one by one   (other nodes)
    ── barrier ──
    configure (all seeds, start on boot, super_read_only)
    restart under a restart permit, wait until reachable
    ── barrier ──
    record whether this node sees a primary
    ── barrier ──
    recover the cluster if nobody did     (first node)

Tags:
    deployment, group-replication, lifecycle, lazyfs, replcheck

Doc-Types:
    - API Reference
    - Operations Runbook
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Protocol, runtime_checkable

from mysql.connector import errors as mysql_errors

from replcheck.core.adapters.mysql import is_link_failure
from replcheck.core.config.settings import HarnessSettings
from replcheck.core.errors import ConfigError
from replcheck.core.logging import LogContext, get_logger
from replcheck.core.protocols import Connector

from . import admin
from .config_files import (
    COMMON_CNF,
    GR_CNF,
    GroupReplicationOptions,
    render_common,
    render_gr,
)
from .permits import DeploymentContext
from .recovery import ClusterRecovery, RecoveryReport

logger = get_logger(__name__)

DATA_DIR = "/var/lib/mysql"
LOG_DIR = "/var/log/mysql"
ERROR_LOG = f"{LOG_DIR}/error.log"
OS_USER = "mysql"


# =============================================================================
# PROTOCOLS
# =============================================================================


@runtime_checkable
class NodeControl(Protocol):
    """Runs commands and writes files on a node, as root."""

    def run(self, node: str, args: Sequence[str], *, stdin: str | None = None) -> str:
        ...

    def write_file(self, node: str, path: str, content: str) -> None:
        ...


@runtime_checkable
class Lifecycle(Protocol):
    def setup(self, node: str) -> None:
        ...

    def teardown(self, node: str) -> None:
        ...


@runtime_checkable
class ProcessControl(Protocol):
    def start(self, node: str) -> None:
        ...

    def kill(self, node: str) -> None:
        ...


@runtime_checkable
class PauseControl(Protocol):
    def pause(self, node: str) -> None:
        ...

    def resume(self, node: str) -> None:
        ...


@runtime_checkable
class PrimaryDiscovery(Protocol):
    def primaries(self) -> set[str]:
        ...


@runtime_checkable
class LogFiles(Protocol):
    def log_files(self, node: str) -> dict[str, str]:
        ...


# =============================================================================
# MYSQL SERVICE
# =============================================================================


class MySQLService:
    """The ``mysql`` system service on a node."""

    def __init__(self, control: NodeControl):
        self.control = control

    def start(self, node: str) -> None:
        logger.info("mysql.start", node=node)
        self.control.run(node, ["service", "mysql", "start"])

    def restart(self, node: str) -> None:
        logger.info("mysql.restart", node=node)
        self.control.run(node, ["service", "mysql", "restart"])

    def kill(self, node: str) -> None:
        logger.info("mysql.kill", node=node)
        self.control.run(node, ["pkill", "-9", "-f", "mysqld"])
        self.control.run(node, ["service", "mysql", "stop"])

    def pause(self, node: str) -> None:
        self.control.run(node, ["pkill", "-STOP", "-f", "mysqld"])

    def resume(self, node: str) -> None:
        self.control.run(node, ["pkill", "-CONT", "-f", "mysqld"])

    def create_admin_user(self, node: str, user: str, password: str) -> None:
        """Create the harness user over the local root socket."""
        logger.info("mysql.create_admin_user", node=node, user=user)
        self.control.run(
            node,
            ["mysql"],
            stdin=(
                "SET SQL_LOG_BIN=0;\n"
                f"CREATE USER '{user}'@'%' IDENTIFIED BY '{password}';\n"
                f"GRANT ALL ON *.* TO '{user}'@'%' WITH GRANT OPTION;\n"
                "SET SQL_LOG_BIN=1;\n"
            ),
        )

    def wipe(self, node: str) -> None:
        self.kill(node)
        self.control.run(
            node,
            ["sh", "-c", f"rm -rf {DATA_DIR}/* {COMMON_CNF} {GR_CNF} {LOG_DIR}/*"],
        )

    def log_files(self, node: str) -> dict[str, str]:
        return {ERROR_LOG: "error.log"}


# =============================================================================
# TOPOLOGIES
# =============================================================================


def _primaries_on(connector: Connector, node: str) -> set[str]:
    try:
        session = connector.open(node)
        try:
            return admin.primaries(session)
        finally:
            session.close()
    except (mysql_errors.Error, OSError) as e:
        if isinstance(e, mysql_errors.Error) and not is_link_failure(e):
            raise
        logger.debug("deployment.node_unreachable", node=node, error=str(e))
        return set()


def discover_primaries(connector: Connector, nodes: Sequence[str]) -> set[str]:
    """Ask every node, in parallel, which members it believes are primaries.

    Unreachable nodes contribute nothing.
    """
    result: set[str] = set()
    with ThreadPoolExecutor(max_workers=len(nodes) or 1, thread_name_prefix="primaries") as pool:
        futures = [pool.submit(_primaries_on, connector, node) for node in nodes]
        for future in as_completed(futures):
            result |= future.result()
    return result


class SingleNodeDeployment:
    """One MySQL server without replication. It is its own primary."""

    def __init__(self, control: NodeControl, settings: HarnessSettings):
        if len(settings.nodes) != 1:
            raise ConfigError(
                f"Single-node deployment needs exactly one node, got {settings.nodes}"
            )
        self.settings = settings
        self.mysql = MySQLService(control)

    def setup(self, node: str) -> None:
        self.mysql.control.write_file(
            node, COMMON_CNF, render_common(self.settings.innodb_flush_method)
        )
        self.mysql.start(node)
        self.mysql.create_admin_user(node, self.settings.user, self.settings.password)

    def teardown(self, node: str) -> None:
        self.mysql.wipe(node)

    def start(self, node: str) -> None:
        self.mysql.start(node)

    def kill(self, node: str) -> None:
        self.mysql.kill(node)

    def pause(self, node: str) -> None:
        self.mysql.pause(node)

    def resume(self, node: str) -> None:
        self.mysql.resume(node)

    def primaries(self) -> set[str]:
        return set(self.settings.nodes)

    def log_files(self, node: str) -> dict[str, str]:
        return self.mysql.log_files(node)


class GroupReplicationDeployment:
    """
    A single-primary replication group over ``settings.nodes``.

    The first node is the setup primary: it bootstraps the group and runs
    recovery if the final restart left nobody seeing a primary.
    """

    def __init__(
        self,
        control: NodeControl,
        connector: Connector,
        settings: HarnessSettings,
        *,
        context: DeploymentContext | None = None,
        resolve: Callable[[str], str] = str,
    ):
        self.settings = settings
        self.connector = connector
        self.context = context or DeploymentContext()
        self.mysql = MySQLService(control)
        self._resolve = resolve

    @property
    def nodes(self) -> list[str]:
        return list(self.settings.nodes)

    def configure(self, node: str, options: GroupReplicationOptions) -> None:
        control = self.mysql.control
        control.write_file(node, COMMON_CNF, render_common(self.settings.innodb_flush_method))
        control.write_file(
            node,
            GR_CNF,
            render_gr(
                node,
                self.nodes,
                options,
                replica_port=self.settings.replica_port,
                resolve=self._resolve,
            ),
        )

    def setup(self, node: str) -> None:
        nodes = self.nodes
        primary = self.settings.primary_node
        permits = self.context.restart_permits(len(nodes))
        barrier = self.context.barrier(len(nodes))

        with LogContext(node=node):
            try:
                self.mysql.start(node)
                # A member that can see a seed which is not running shuts
                # itself down, so start with the primary as the only seed.
                self.configure(node, GroupReplicationOptions(seeds=(primary,)))
                self.mysql.restart(node)
                self.mysql.create_admin_user(node, self.settings.user, self.settings.password)
                barrier.wait()

                session = self.connector.await_open(node)
                try:
                    admin.create_replication_user(
                        session,
                        self.settings.replication_user,
                        self.settings.replication_password,
                    )
                    admin.set_replication_source(
                        session,
                        self.settings.replication_user,
                        self.settings.replication_password,
                    )
                    barrier.wait()

                    if node == primary:
                        admin.bootstrap_group(session)
                    barrier.wait()

                    # Concurrent joins race and time out.
                    with self.context.join_lock:
                        if node != primary:
                            admin.start_group_replication(session)
                    barrier.wait()
                finally:
                    session.close()

                self.configure(
                    node,
                    GroupReplicationOptions(
                        seeds=tuple(nodes),
                        start_on_boot=True,
                        super_read_only=True,
                    ),
                )
                with permits.permit(node):
                    self.mysql.restart(node)
                    self.connector.await_open(node).close()
                barrier.wait()

                session = self.connector.open(node)
                try:
                    seen = admin.primaries(session)
                finally:
                    session.close()
                logger.info("deployment.primaries_seen", primaries=sorted(seen))
                if seen:
                    self.context.primary_seen.set()
                barrier.wait()

                if node == primary and not self.context.primary_seen.is_set():
                    logger.warning("deployment.no_primaries_after_restart")
                    self.recover()
            except BaseException:
                barrier.abort()
                raise

    def teardown(self, node: str) -> None:
        self.mysql.wipe(node)

    def start(self, node: str) -> None:
        self.mysql.start(node)

    def kill(self, node: str) -> None:
        self.mysql.kill(node)

    def pause(self, node: str) -> None:
        self.mysql.pause(node)

    def resume(self, node: str) -> None:
        self.mysql.resume(node)

    def log_files(self, node: str) -> dict[str, str]:
        return self.mysql.log_files(node)

    def primaries(self) -> set[str]:
        """Union of the primaries every reachable node believes in."""
        return discover_primaries(self.connector, self.nodes)

    def members(self, node: str) -> list[dict[str, Any]]:
        session = self.connector.open(node)
        try:
            return admin.members(session)
        finally:
            session.close()

    def recover(self) -> RecoveryReport:
        return ClusterRecovery.from_settings(self.settings, self.connector).recover()


class LazyFS:
    """
    A FUSE filesystem over the data directory that can forget writes.

    Writes not yet fsynced live in the filesystem's cache; ``clear_cache``
    drops them, which is what a power loss does to a real disk.
    """

    def __init__(
        self,
        control: NodeControl,
        *,
        mount_dir: str = DATA_DIR,
        user: str = OS_USER,
        root: str = "/opt/replcheck/lazyfs",
    ):
        self.control = control
        self.mount_dir = mount_dir
        self.user = user
        self.data_dir = f"{root}/data"
        self.fifo = f"{root}/faults.fifo"
        self.config = f"{root}/config.toml"
        self.log = f"{root}/lazyfs.log"

    def _config_text(self) -> str:
        return (
            "[faults]\n"
            f'fifo_path="{self.fifo}"\n'
            "[cache]\n"
            "apply_eviction=false\n"
            "[cache.simple]\n"
            "custom_size=\"0.5GB\"\n"
            "blocks_per_page=1\n"
            "[filesystem]\n"
            f'logfile="{self.log}"\n'
            "log_all_operations=false\n"
        )

    def setup(self, node: str) -> None:
        logger.info("lazyfs.mount", node=node, dir=self.mount_dir)
        self.control.run(node, ["mkdir", "-p", self.data_dir, self.mount_dir])
        self.control.run(node, ["chown", "-R", f"{self.user}:{self.user}", self.data_dir, self.mount_dir])
        self.control.write_file(node, self.config, self._config_text())
        self.control.run(node, ["sh", "-c", f"test -p {self.fifo} || mkfifo {self.fifo}"])
        self.control.run(
            node,
            [
                "lazyfs", self.mount_dir,
                "--config-path", self.config,
                "-o", "allow_other",
                "-o", "modules=subdir",
                "-o", f"subdir={self.data_dir}",
            ],
        )

    def teardown(self, node: str) -> None:
        logger.info("lazyfs.unmount", node=node, dir=self.mount_dir)
        self.control.run(node, ["fusermount", "-uz", self.mount_dir])
        self.control.run(node, ["rm", "-rf", self.data_dir, self.fifo])

    def _fault(self, node: str, command: str) -> None:
        self.control.run(node, ["sh", "-c", f"echo {command} > {self.fifo}"])

    def checkpoint(self, node: str) -> None:
        """Flush everything cached to the underlying directory."""
        self._fault(node, "lazyfs::cache-checkpoint")

    def lose_unfsynced_writes(self, node: str) -> None:
        logger.info("lazyfs.lose_unfsynced_writes", node=node)
        self._fault(node, "lazyfs::clear-cache")

    def log_files(self, node: str) -> dict[str, str]:
        return {self.log: "lazyfs.log"}


class FaultyFilesystemDeployment:
    """Wraps a deployment so its data directory is a LazyFS mount."""

    def __init__(self, inner: Any, lazyfs: LazyFS):
        self.inner = inner
        self.lazyfs = lazyfs

    def setup(self, node: str) -> None:
        self.lazyfs.setup(node)
        self.inner.setup(node)
        # Make sure the freshly initialized data directory is durable.
        self.lazyfs.checkpoint(node)

    def teardown(self, node: str) -> None:
        self.inner.teardown(node)
        self.lazyfs.teardown(node)

    def start(self, node: str) -> None:
        self.inner.start(node)

    def kill(self, node: str) -> None:
        self.inner.kill(node)
        self.lazyfs.lose_unfsynced_writes(node)

    def pause(self, node: str) -> None:
        self.inner.pause(node)

    def resume(self, node: str) -> None:
        self.inner.resume(node)

    def primaries(self) -> set[str]:
        return self.inner.primaries()

    def log_files(self, node: str) -> dict[str, str]:
        return {**self.inner.log_files(node), **self.lazyfs.log_files(node)}

    def __getattr__(self, name: str) -> Any:
        # recover(), members() and anything else topology-specific
        return getattr(self.inner, name)


# =============================================================================
# FACTORY / DRIVER
# =============================================================================


def build_deployment(
    settings: HarnessSettings,
    control: NodeControl,
    connector: Connector,
    *,
    context: DeploymentContext | None = None,
    resolve: Callable[[str], str] = str,
) -> Any:
    """The deployment ``settings`` describes."""
    if settings.single_node:
        deployment: Any = SingleNodeDeployment(control, settings)
    else:
        deployment = GroupReplicationDeployment(
            control, connector, settings, context=context, resolve=resolve
        )
    if settings.lazyfs:
        deployment = FaultyFilesystemDeployment(deployment, LazyFS(control))
    return deployment


def setup_cluster(deployment: Lifecycle, nodes: Sequence[str]) -> None:
    """Run ``deployment.setup`` for every node at once; re-raise the first failure."""
    first_error: BaseException | None = None
    with ThreadPoolExecutor(max_workers=len(nodes), thread_name_prefix="setup") as pool:
        futures = {pool.submit(deployment.setup, node): node for node in nodes}
        for future in as_completed(futures):
            node = futures[future]
            try:
                future.result()
            except Exception as e:
                logger.error("deployment.setup_failed", node=node, error=str(e))
                # Other nodes fail with BrokenBarrierError once one aborts.
                if first_error is None or isinstance(first_error, threading.BrokenBarrierError):
                    first_error = e
    if first_error is not None:
        raise first_error
    logger.info("deployment.ready", nodes=list(nodes))


__all__ = [
    "DATA_DIR",
    "NodeControl",
    "Lifecycle",
    "ProcessControl",
    "PauseControl",
    "PrimaryDiscovery",
    "LogFiles",
    "MySQLService",
    "SingleNodeDeployment",
    "GroupReplicationDeployment",
    "LazyFS",
    "FaultyFilesystemDeployment",
    "discover_primaries",
    "build_deployment",
    "setup_cluster",
]
