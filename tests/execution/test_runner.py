"""Tests for replcheck.execution.runner with fake sessions."""

import random
from collections import defaultdict

import pytest
from mysql.connector import errors as mysql_errors

from replcheck.core.config import HarnessSettings, WriteStrategy
from replcheck.core.errors import InvariantViolationError
from replcheck.execution.executor import OperationExecutor
from replcheck.execution.generator import TransactionGenerator
from replcheck.execution.history import History
from replcheck.execution.runner import WorkloadRunner
from replcheck.execution.workloads import LIST_APPEND
from tests._support.fakes import FakeConnector, FakeSession


def make_runner(connector, *, nodes=("n1", "n2", "n3"), concurrency=3, time_limit=0.2, **gen_kwargs):
    gen_kwargs.setdefault("rng", random.Random(5))
    executor = OperationExecutor(
        LIST_APPEND,
        rng=random.Random(5),
        write_strategies=gen_kwargs.pop("write_strategies", [WriteStrategy.ON_DUPLICATE_KEY]),
    )
    return WorkloadRunner(
        connector,
        executor,
        TransactionGenerator(LIST_APPEND, **gen_kwargs),
        nodes=list(nodes),
        concurrency=concurrency,
        time_limit=time_limit,
        seed=1,
    )


def events_by_process(history):
    by_process = defaultdict(list)
    for op in history.ops:
        by_process[op.process].append(op.type)
    return by_process


class TestWorkloadRunner:
    def test_invocations_paired_with_completions(self):
        history = make_runner(FakeConnector()).run()
        summary = history.summary()
        assert summary["invoke"] > 0
        assert summary["invoke"] == summary.get("ok", 0) + summary.get("fail", 0) + summary.get("info", 0)

    def test_one_operation_in_flight_per_process(self):
        history = make_runner(FakeConnector()).run()
        for types in events_by_process(history).values():
            assert types[0::2] == ["invoke"] * len(types[0::2])
            assert "invoke" not in types[1::2]

    def test_workers_spread_over_nodes(self):
        connector = FakeConnector()
        make_runner(connector, nodes=["n1", "n2"], concurrency=4).run()
        assert {s.node for s in connector.opened} == {"n1", "n2"}

    def test_info_crashes_process_and_reopens(self):
        lost = mysql_errors.OperationalError(msg="Lost connection to MySQL server", errno=2013)
        sessions = {n: FakeSession(n).on("SELECT val", lost) for n in ("n1", "n2")}
        connector = FakeConnector(sessions)
        history = make_runner(
            connector,
            nodes=["n1", "n2"],
            concurrency=2,
            read_ratio=1.0,
            max_txn_length=1,
        ).run()

        by_process = events_by_process(history)
        assert all(types in (["invoke", "info"], ["invoke"]) for types in by_process.values())
        assert any(p >= 2 for p in by_process)
        # worker 0 only ever runs even processes, worker 1 odd ones
        assert {p % 2 for p in by_process} == {0, 1}
        assert len(connector.opened) > 2

    def test_invariant_violation_stops_the_run(self):
        dup = mysql_errors.IntegrityError(msg="Duplicate entry", errno=1062, sqlstate="23000")
        session = FakeSession("n1").on("UPDATE txn", 0).on("INSERT INTO", dup)
        runner = make_runner(
            FakeConnector({"n1": session}),
            nodes=["n1"],
            concurrency=2,
            time_limit=30,
            read_ratio=0.0,
            write_strategies=[WriteStrategy.UPDATE_INSERT],
        )
        with pytest.raises(InvariantViolationError):
            runner.run()
        # the failing invocation has no completion
        summary = runner.history.summary()
        assert summary["invoke"] > summary.get("ok", 0) + summary.get("fail", 0)

    def test_stop_before_run(self):
        runner = make_runner(FakeConnector())
        runner.stop()
        assert len(runner.run()) == 0

    def test_sessions_closed_at_end(self):
        sessions = {n: FakeSession(n) for n in ("n1", "n2", "n3")}
        make_runner(FakeConnector(sessions)).run()
        assert all(s.closed for s in sessions.values())

    def test_history_passed_in_is_used(self):
        history = History()
        runner = WorkloadRunner(
            FakeConnector(),
            OperationExecutor(LIST_APPEND),
            TransactionGenerator(LIST_APPEND),
            nodes=["n1"],
            concurrency=1,
            time_limit=0.05,
            history=history,
        )
        assert runner.run() is history

    def test_from_settings(self):
        settings = HarnessSettings(nodes=["a", "b"], concurrency=7, time_limit=3)
        runner = WorkloadRunner.from_settings(settings, FakeConnector())
        assert runner.nodes == ["a", "b"]
        assert runner.concurrency == 7
        assert runner.time_limit == 3
