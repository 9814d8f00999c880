"""
Operation executor: runs one transaction of micro-ops against one session.

Manifesto:
    Every knob that changes what the server sees (isolation level, read
    locking, predicate reads, write strategy, injected delay and aborts) is
    applied here and nowhere else, so one history can be read back against
    one well-defined client behaviour.

Execution::

    invoke(client, op)
      └── classifier.run(...)            -> Ok | Fail | Info
            └── execute(session, txn)
                  ├── 1 mop:  autocommit, no locking, no abort
                  └── n mops: session.transaction(isolation)
                        ├── mop, pause, mop, pause, ... mop
                        └── maybe raise InjectedAbort (rolled back)

Reads:
    ``SELECT val FROM txnN WHERE id = %s`` or, with probability
    ``predicate_read_probability``, ``WHERE sk = %s``. A read whose key is
    written later in the same transaction gets the configured locking
    clause.

Writes (strategy drawn uniformly from the enabled set):
    - on-dup-key:    ``INSERT ... ON DUPLICATE KEY UPDATE val = <merge>``
    - update-insert: ``UPDATE``; if nothing matched, ``INSERT`` under
      ``SAVEPOINT upsert``; on a duplicate key, roll back to the savepoint
      and ``UPDATE`` again. Still nothing matched is an invariant
      violation.

Tags:
    executor, transactions, mysql, fault-injection, replcheck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Sequence
from typing import Any

from mysql.connector import errors as mysql_errors

from replcheck.core.config.components import Isolation, LockingMode, WriteStrategy
from replcheck.core.errors import InjectedAbort, InvariantViolationError
from replcheck.core.logging import get_logger
from replcheck.core.protocols import Session

from .classifier import OutcomeClassifier
from .history import MicroOp, Operation
from .workloads import ClientSession, Workload, get_workload, table_name

logger = get_logger(__name__)

ER_DUP_ENTRY = 1062


class OperationExecutor:
    """
    Executes transactions for one workload.

    Safe to share between worker threads only when each thread passes its
    own ``rng``; the default instance-level RNG is not locked.
    """

    def __init__(
        self,
        workload: Workload,
        *,
        isolation: Isolation = Isolation.SERIALIZABLE,
        table_count: int = 2,
        predicate_read_probability: float = 0.0,
        read_locking: LockingMode = LockingMode.NONE,
        write_strategies: Sequence[WriteStrategy] = (
            WriteStrategy.ON_DUPLICATE_KEY,
            WriteStrategy.UPDATE_INSERT,
        ),
        abort_probability: float = 0.0,
        inter_mop_delay: float = 0.0,
        classifier: OutcomeClassifier | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not write_strategies:
            raise ValueError("at least one write strategy must be enabled")
        self.workload = workload
        self.isolation = isolation
        self.table_count = table_count
        self.predicate_read_probability = predicate_read_probability
        self.read_locking = read_locking
        self.write_strategies = list(write_strategies)
        self.abort_probability = abort_probability
        self.inter_mop_delay = inter_mop_delay
        self.classifier = classifier or OutcomeClassifier()
        self._rng = rng or random.Random()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> OperationExecutor:
        kwargs.setdefault(
            "classifier",
            OutcomeClassifier(read_only_backoff=settings.read_only_backoff),
        )
        return cls(
            get_workload(settings.workload),
            isolation=settings.isolation,
            table_count=settings.table_count,
            predicate_read_probability=settings.predicate_read_probability,
            read_locking=settings.read_locking,
            write_strategies=settings.write_strategies,
            abort_probability=settings.abort_probability,
            inter_mop_delay=settings.inter_mop_delay,
            **kwargs,
        )

    # ── Operation boundary ───────────────────────────────────────

    def invoke(
        self,
        client: ClientSession,
        op: Operation,
        rng: random.Random | None = None,
    ) -> Operation:
        """Execute an invoked operation and return its completion.

        Recognized failures become fail/info completions; anything else
        (including :class:`InvariantViolationError`) propagates.
        """
        outcome = self.classifier.run(
            lambda: self.execute(client.prepare(), op.value, rng=rng)
        )
        return op.complete(outcome)

    def execute(
        self,
        session: Session,
        txn: Sequence[MicroOp],
        rng: random.Random | None = None,
    ) -> list[MicroOp]:
        """Run ``txn`` and return it with read values filled in. Raises on failure."""
        rng = rng or self._rng
        txn = list(txn)
        if len(txn) <= 1:
            return [self._apply(session, mop, (), False, rng) for mop in txn]

        with session.transaction(self.isolation):
            completed = []
            for i, mop in enumerate(txn):
                if i > 0:
                    self._pause(rng)
                completed.append(self._apply(session, mop, txn[i + 1:], True, rng))
            if rng.random() < self.abort_probability:
                raise InjectedAbort()
        return completed

    # ── Micro-ops ────────────────────────────────────────────────

    def _pause(self, rng: random.Random) -> None:
        if self.inter_mop_delay > 0:
            self._sleep(rng.expovariate(1.0 / self.inter_mop_delay))

    def _apply(
        self,
        session: Session,
        mop: MicroOp,
        rest: Sequence[MicroOp],
        in_txn: bool,
        rng: random.Random,
    ) -> MicroOp:
        if mop.is_read:
            return self._read(session, mop, rest, in_txn, rng)
        self._write(session, mop, in_txn, rng)
        return mop

    def _key_column(self, rng: random.Random) -> str:
        return "sk" if rng.random() < self.predicate_read_probability else "id"

    def locking_clause(self, mop: MicroOp, rest: Sequence[MicroOp], in_txn: bool) -> str:
        """Locking clause for a read, given the micro-ops that follow it."""
        if not in_txn:
            return ""
        if any(not m.is_read and m.key == mop.key for m in rest):
            return self.read_locking.clause
        return ""

    def _read(
        self,
        session: Session,
        mop: MicroOp,
        rest: Sequence[MicroOp],
        in_txn: bool,
        rng: random.Random,
    ) -> MicroOp:
        table = table_name(mop.key, self.table_count)
        column = self._key_column(rng)
        lock = self.locking_clause(mop, rest, in_txn)
        rows = session.execute(
            f"SELECT val FROM {table} WHERE {column} = %s{lock}", [mop.key]
        )
        value = self.workload.decode(rows[0]["val"]) if rows else None
        return MicroOp(mop.f, mop.key, value)

    def _write(
        self,
        session: Session,
        mop: MicroOp,
        in_txn: bool,
        rng: random.Random,
    ) -> None:
        table = table_name(mop.key, self.table_count)
        value = self.workload.encode(mop.value)
        strategy = rng.choice(self.write_strategies)
        if strategy is WriteStrategy.ON_DUPLICATE_KEY:
            session.execute(
                f"INSERT INTO {table} (id, sk, val) VALUES (%s, %s, %s)"
                f" ON DUPLICATE KEY UPDATE val = {self.workload.merge_sql}",
                [mop.key, mop.key, value, value],
            )
        else:
            self._update_insert(session, table, mop.key, value, in_txn, rng)

    def _update(
        self,
        session: Session,
        table: str,
        key: Any,
        value: Any,
        rng: random.Random,
    ) -> int:
        column = self._key_column(rng)
        return session.execute(
            f"UPDATE {table} SET val = {self.workload.merge_sql} WHERE {column} = %s",
            [value, key],
        )

    def _update_insert(
        self,
        session: Session,
        table: str,
        key: Any,
        value: Any,
        in_txn: bool,
        rng: random.Random,
    ) -> None:
        if self._update(session, table, key, value, rng) > 0:
            return

        if in_txn:
            session.execute("SAVEPOINT upsert")
        try:
            session.execute(
                f"INSERT INTO {table} (id, sk, val) VALUES (%s, %s, %s)",
                [key, key, value],
            )
        except mysql_errors.Error as e:
            if e.errno != ER_DUP_ENTRY:
                raise
            logger.debug("executor.upsert_insert_conflict", table=table, key=key)
            if in_txn:
                session.execute("ROLLBACK TO SAVEPOINT upsert")
            if self._update(session, table, key, value, rng) == 0:
                raise InvariantViolationError(
                    f"Upsert of key {key} in {table} found no row to update,"
                    " could not insert one, and then still found no row",
                ).with_context(node=session.node, table=table, key=key) from e
            return
        if in_txn:
            session.execute("RELEASE SAVEPOINT upsert")


__all__ = [
    "ER_DUP_ENTRY",
    "OperationExecutor",
]
