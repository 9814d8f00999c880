"""MySQL option files rendered from the templates shipped in ``templates/``."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from importlib import resources
from string import Template

CONF_DIR = "/etc/mysql/conf.d"
COMMON_CNF = f"{CONF_DIR}/common.cnf"
GR_CNF = f"{CONF_DIR}/gr.cnf"

# Any fixed UUID works; every member of one group must use the same one.
GROUP_NAME = "7b9c54f0-3d65-4a8e-9b2d-6c1e4f0a2b11"


def _template(name: str) -> Template:
    text = resources.files("replcheck.cluster").joinpath("templates", name).read_text("utf-8")
    return Template(text)


def _on_off(flag: bool) -> str:
    return "ON" if flag else "OFF"


def server_id(node: str, nodes: Sequence[str]) -> int:
    """1-based position of ``node`` in the cluster."""
    return list(nodes).index(node) + 1


@dataclass(frozen=True)
class GroupReplicationOptions:
    """Per-phase group replication settings.

    ``seeds`` may include the local node; it is left out when rendering.
    """

    seeds: tuple[str, ...] = ()
    start_on_boot: bool = False
    super_read_only: bool = False


def render_common(innodb_flush_method: str) -> str:
    return _template("common.cnf").substitute(innodb_flush_method=innodb_flush_method)


def render_gr(
    node: str,
    nodes: Sequence[str],
    options: GroupReplicationOptions,
    *,
    replica_port: int = 33061,
    resolve: Callable[[str], str] = str,
) -> str:
    """Render ``gr.cnf`` for ``node``. ``resolve`` maps node names to addresses."""
    seeds = ",".join(
        f"{resolve(seed)}:{replica_port}" for seed in options.seeds if seed != node
    )
    return _template("gr.cnf").substitute(
        server_id=server_id(node, nodes),
        group_name=GROUP_NAME,
        local_address=f"{resolve(node)}:{replica_port}",
        seeds=seeds,
        start_on_boot=_on_off(options.start_on_boot),
        super_read_only=_on_off(options.super_read_only),
    )


__all__ = [
    "CONF_DIR",
    "COMMON_CNF",
    "GR_CNF",
    "GROUP_NAME",
    "server_id",
    "GroupReplicationOptions",
    "render_common",
    "render_gr",
]
