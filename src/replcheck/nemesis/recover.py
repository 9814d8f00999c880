"""
Recover nemesis: put a cluster that lost its primary back together.

Fault injection runs elsewhere. This nemesis is what a fault schedule
invokes periodically (and once at the end of a run) so a cluster that a
previous fault broke does not stay broken for the rest of the run.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any

from replcheck.core.logging import get_logger

logger = get_logger(__name__)


class RecoverResult(str, Enum):
    NO_NEED = "no-need"
    RECOVERED = "recovered"


class RecoverNemesis:
    """
    Recovers the cluster when no node believes a primary exists.

    ``deployment`` must provide ``primaries()``, ``start(node)``,
    ``resume(node)`` and ``recover()``.
    """

    f = "recover"

    def __init__(self, deployment: Any, nodes: Sequence[str]):
        self.deployment = deployment
        self.nodes = list(nodes)

    def _on_nodes(self, fn: Callable[[str], None]) -> None:
        with ThreadPoolExecutor(max_workers=len(self.nodes), thread_name_prefix="nemesis") as pool:
            # list() re-raises the first failure
            list(pool.map(fn, self.nodes))

    def invoke(self) -> RecoverResult:
        primaries = self.deployment.primaries()
        if primaries:
            logger.info("nemesis.recover_not_needed", primaries=sorted(primaries))
            return RecoverResult.NO_NEED

        # Recovery needs every node running and not paused.
        logger.info("nemesis.starting_nodes", nodes=self.nodes)
        self._on_nodes(self.deployment.start)
        logger.info("nemesis.resuming_nodes", nodes=self.nodes)
        self._on_nodes(self.deployment.resume)

        self.deployment.recover()
        return RecoverResult.RECOVERED


__all__ = [
    "RecoverResult",
    "RecoverNemesis",
]
