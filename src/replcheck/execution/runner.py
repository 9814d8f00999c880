"""
Workload runner: concurrent workers driving the executor for a fixed time.

Key Concepts:
    Worker: one thread, one connection, one node (``nodes[i % n]``).
        Draws transactions from the shared generator, records the invoke,
        executes, records the completion.
    Process: the logical client identity written to the history. After an
        ``info`` completion the worker's process is considered crashed: it
        closes its connection and continues as ``process + concurrency``
        on a fresh one, so no process ever has two operations in flight.
    Stop: the time limit, or the first worker to raise. Errors the
        classifier does not turn into an outcome
        (:class:`InvariantViolationError` among them) stop every worker
        and are re-raised from :meth:`WorkloadRunner.run`.

Architecture Decisions:
    - ThreadPoolExecutor with one worker per client; database round trips
      release the GIL.
    - Workers share nothing but the generator and the history, both
      internally locked.

Tags:
    runner, concurrency, workers, history, replcheck
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from replcheck.core.logging import LogContext, get_logger
from replcheck.core.protocols import Connector

from .executor import OperationExecutor
from .generator import TransactionGenerator
from .history import History, Operation
from .workloads import ClientSession

logger = get_logger(__name__)


class WorkloadRunner:
    """Runs ``concurrency`` workers against ``nodes`` until ``time_limit``.

    Example:
        settings = get_settings()
        runner = WorkloadRunner.from_settings(settings, MySQLConnector.from_settings(settings))
        history = runner.run()
        print(history.summary())
    """

    def __init__(
        self,
        connector: Connector,
        executor: OperationExecutor,
        generator: TransactionGenerator,
        *,
        nodes: list[str],
        concurrency: int = 5,
        time_limit: float = 60.0,
        history: History | None = None,
        seed: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.connector = connector
        self.executor = executor
        self.generator = generator
        self.nodes = list(nodes)
        self.concurrency = concurrency
        self.time_limit = time_limit
        self.history = history if history is not None else History()
        self._seed = seed
        self._clock = clock
        self._stop = threading.Event()

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        connector: Connector,
        **kwargs: Any,
    ) -> WorkloadRunner:
        return cls(
            connector,
            OperationExecutor.from_settings(settings),
            TransactionGenerator.from_settings(settings),
            nodes=settings.nodes,
            concurrency=settings.concurrency,
            time_limit=settings.time_limit,
            **kwargs,
        )

    def stop(self) -> None:
        """Ask every worker to finish after its current operation."""
        self._stop.set()

    def run(self) -> History:
        deadline = self._clock() + self.time_limit
        first_error: BaseException | None = None

        logger.info(
            "runner.started",
            workers=self.concurrency,
            nodes=self.nodes,
            time_limit=self.time_limit,
        )
        with ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="replcheck-worker",
        ) as pool:
            futures = {
                pool.submit(self._worker, index, deadline): index
                for index in range(self.concurrency)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    future.result()
                except Exception as e:
                    logger.error(
                        "runner.worker_crashed",
                        worker=index,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    self._stop.set()
                    if first_error is None:
                        first_error = e

        logger.info("runner.finished", **self.history.summary())
        if first_error is not None:
            raise first_error
        return self.history

    def _worker(self, index: int, deadline: float) -> None:
        node = self.nodes[index % len(self.nodes)]
        rng = random.Random(None if self._seed is None else self._seed + index)
        process = index
        client = ClientSession(
            node,
            self.connector.open,
            self.executor.workload,
            self.executor.isolation,
        )
        try:
            with LogContext(worker=index, node=node):
                while not self._stop.is_set() and self._clock() < deadline:
                    txn = self.generator.next_txn()
                    op = self.history.record(Operation.invoke(process, txn))
                    completion = self.history.record(
                        self.executor.invoke(client, op, rng=rng)
                    )
                    if completion.type == "info":
                        logger.debug(
                            "runner.process_crashed",
                            process=process,
                            error=completion.error,
                        )
                        client.close()
                        process += self.concurrency
        finally:
            client.close()


__all__ = ["WorkloadRunner"]
