"""Tests for replcheck.cluster.recovery."""

import threading

import pytest
from mysql.connector import errors as mysql_errors

from replcheck.cluster.recovery import ClusterRecovery, recover_cluster
from replcheck.core.adapters.types import TimeoutPolicy
from replcheck.core.config import HarnessSettings
from replcheck.core.errors import MalformedInputError, RecoveryError
from tests._support.fakes import FakeConnector, FakeSession

NODES = ["n1", "n2", "n3"]


def cluster(executed, received=None, log=None):
    """FakeSessions answering progress queries; START calls appended to ``log``."""
    received = received or {}
    sessions = {}
    for node in NODES:
        session = (
            FakeSession(node)
            .on("GTID_EXECUTED", [{"gtid": executed.get(node, "")}])
            .on("received_transaction_set", [{"received": received.get(node, "")}])
            .on("replication_group_members", [{"MEMBER_HOST": "n1", "MEMBER_ROLE": "PRIMARY"}])
        )
        if log is not None:
            session.on("START GROUP_REPLICATION", lambda sql, params, n=node: log.append(n) or 0)
        sessions[node] = session
    return sessions


def recovery(connector, **kwargs):
    kwargs.setdefault("lock", threading.Lock())
    return ClusterRecovery(connector, NODES, **kwargs)


class TestRecover:
    def test_most_knowledgeable_node_bootstraps(self):
        log = []
        sessions = cluster(
            executed={"n1": "foo:1-5", "n2": "foo:1-5", "n3": "foo:1-3"},
            received={"n2": "foo:6-8"},
            log=log,
        )
        report = recovery(FakeConnector(sessions)).recover()

        assert report.primary == "n2"
        assert report.joined == ["n1", "n3"]
        assert log == ["n2", "n1", "n3"]
        assert sessions["n2"].sql.count("SET GLOBAL group_replication_bootstrap_group=ON") == 1
        for node in ("n1", "n3"):
            assert sessions[node].executed("bootstrap_group") == []

    def test_every_node_stopped_before_bootstrap(self):
        sessions = cluster(executed={"n1": "foo:1"})
        recovery(FakeConnector(sessions)).recover()
        for session in sessions.values():
            assert session.executed("STOP GROUP_REPLICATION")
        primary_sql = sessions["n1"].sql
        assert primary_sql.index("STOP GROUP_REPLICATION") < primary_sql.index(
            "SET GLOBAL group_replication_bootstrap_group=ON"
        )

    def test_tie_goes_to_smallest_node(self):
        sessions = cluster(executed={"n1": "a:1-3", "n2": "b:1-3", "n3": "c:1-3"})
        assert recovery(FakeConnector(sessions)).recover().primary == "n1"

    def test_report(self):
        sessions = cluster(executed={"n1": "foo:1-2", "n2": "foo:1", "n3": ""})
        report = recovery(FakeConnector(sessions)).recover().to_dict()
        assert report["primary"] == "n1"
        assert report["cardinality"] == {"n1": 2, "n2": 1, "n3": 0}
        assert report["progress"]["n1"] == "foo:1-2"
        assert report["members"] == [{"member_host": "n1", "member_role": "PRIMARY"}]

    def test_sessions_closed(self):
        sessions = cluster(executed={})
        recovery(FakeConnector(sessions)).recover()
        assert all(s.closed for s in sessions.values())

    def test_recovery_timeouts_used(self):
        connector = FakeConnector(cluster(executed={}))
        timeouts = TimeoutPolicy(connect_timeout=1, socket_timeout=1000)
        recovery(connector, timeouts=timeouts).recover()
        assert connector.timeouts == [timeouts] * 3


class TestRecoverFailures:
    def test_unreachable_node_aborts(self):
        sessions = cluster(executed={"n1": "foo:1"})
        lost = mysql_errors.InterfaceError(msg="Can't connect to MySQL server", errno=2003)
        connector = FakeConnector(sessions, failures={"n3": lost})
        with pytest.raises(RecoveryError) as exc_info:
            recovery(connector).recover()
        assert exc_info.value.context.node == "n3"
        assert exc_info.value.context.metadata["phase"] == "open"
        assert exc_info.value.cause is lost
        for session in sessions.values():
            assert session.executed("bootstrap_group") == []

    def test_failed_stop_aborts_and_closes(self):
        sessions = cluster(executed={})
        sessions["n2"].on(
            "STOP GROUP_REPLICATION",
            mysql_errors.OperationalError(msg="Lost connection to MySQL server", errno=2013),
        )
        with pytest.raises(RecoveryError) as exc_info:
            recovery(FakeConnector(sessions)).recover()
        assert exc_info.value.context.metadata["phase"] == "fetch_progress"
        assert all(s.closed for s in sessions.values())

    def test_failed_join_aborts(self):
        sessions = cluster(executed={"n1": "foo:1-9"})
        sessions["n3"].on(
            "START GROUP_REPLICATION",
            mysql_errors.DatabaseError(msg="The server is not configured properly", errno=3092),
        )
        with pytest.raises(RecoveryError) as exc_info:
            recovery(FakeConnector(sessions)).recover()
        assert exc_info.value.context.node == "n3"
        assert exc_info.value.context.metadata["phase"] == "join"
        assert all(s.closed for s in sessions.values())

    def test_malformed_progress_propagates(self):
        sessions = cluster(executed={"n1": "foo:1", "n2": "foo:oops"})
        with pytest.raises(MalformedInputError):
            recovery(FakeConnector(sessions)).recover()

    def test_no_nodes(self):
        with pytest.raises(RecoveryError):
            ClusterRecovery(FakeConnector(), [], lock=threading.Lock()).recover()


class TestSerialized:
    def test_waits_for_the_recovery_lock(self):
        lock = threading.Lock()
        sessions = cluster(executed={})
        worker = threading.Thread(
            target=ClusterRecovery(FakeConnector(sessions), NODES, lock=lock).recover
        )
        with lock:
            worker.start()
            worker.join(timeout=0.1)
            assert worker.is_alive()
            assert all(s.statements == [] for s in sessions.values())
        worker.join()
        assert all(s.executed("STOP GROUP_REPLICATION") for s in sessions.values())

    def test_from_settings(self):
        settings = HarnessSettings(nodes=NODES, connect_timeout=3, recovery_socket_timeout=500)
        connector = FakeConnector(cluster(executed={"n3": "x:1"}))
        report = recover_cluster(settings, connector)
        assert report.primary == "n3"
        assert connector.timeouts[0] == TimeoutPolicy(connect_timeout=3, socket_timeout=500)
