"""Tests for replcheck.cluster.admin statements."""

import pytest
from mysql.connector import errors as mysql_errors

from replcheck.cluster import admin
from replcheck.progress import parse
from tests._support.fakes import FakeSession


class TestReplicationUser:
    def test_created_outside_binlog(self, fake_session):
        admin.create_replication_user(fake_session, "replica", "pw")
        sql = fake_session.sql
        assert sql[0] == "SET SQL_LOG_BIN=0"
        assert sql[-1] == "SET SQL_LOG_BIN=1"
        assert "IDENTIFIED WITH mysql_native_password BY 'pw'" in sql[1]
        grants = [s for s in sql if s.startswith("GRANT")]
        assert len(grants) == len(admin.REPLICATION_GRANTS)
        assert "FLUSH PRIVILEGES" in sql

    def test_recovery_source(self, fake_session):
        admin.set_replication_source(fake_session, "replica", "pw")
        assert fake_session.sql == [
            "CHANGE REPLICATION SOURCE TO SOURCE_USER='replica', SOURCE_PASSWORD='pw'"
            " FOR CHANNEL 'group_replication_recovery'"
        ]


class TestBootstrap:
    def test_flag_set_and_cleared(self, fake_session):
        admin.bootstrap_group(fake_session)
        assert fake_session.sql == [
            "SET GLOBAL group_replication_bootstrap_group=ON",
            "START GROUP_REPLICATION",
            "SET GLOBAL group_replication_bootstrap_group=OFF",
        ]

    def test_flag_cleared_when_start_fails(self):
        session = FakeSession("n1").on(
            "START GROUP_REPLICATION",
            mysql_errors.DatabaseError(msg="The server is not configured properly", errno=3092),
        )
        with pytest.raises(mysql_errors.DatabaseError):
            admin.bootstrap_group(session)
        assert session.sql[-1] == "SET GLOBAL group_replication_bootstrap_group=OFF"


class TestProgress:
    def test_gtid_executed(self):
        session = FakeSession().on("GTID_EXECUTED", [{"@@GLOBAL.GTID_EXECUTED": "foo:1-5,\nbar:2"}])
        assert admin.gtid_executed(session) == parse("foo:1-5, bar:2")

    def test_gtid_executed_bytes(self):
        session = FakeSession().on("GTID_EXECUTED", [{"@@GLOBAL.GTID_EXECUTED": b"foo:1-2"}])
        assert admin.gtid_executed(session) == parse("foo:1-2")

    def test_certified_transactions_from_applier_channel(self):
        session = FakeSession().on("received_transaction_set", [{"received_transaction_set": "foo:6-8"}])
        assert admin.certified_transactions(session) == parse("foo:6-8")
        assert "channel_name = 'group_replication_applier'" in session.sql[0]

    def test_certified_transactions_none(self):
        session = FakeSession().on("received_transaction_set", [{"received_transaction_set": None}])
        assert admin.certified_transactions(session) == parse("")

    def test_known_is_union(self):
        session = (
            FakeSession()
            .on("GTID_EXECUTED", [{"g": "foo:1-5"}])
            .on("received_transaction_set", [{"r": "foo:4-8, bar:1"}])
        )
        assert admin.known_transactions(session) == parse("foo:1-8, bar:1")


class TestMembership:
    def test_members_lower_cased(self):
        session = FakeSession().on(
            "replication_group_members",
            [{"MEMBER_HOST": "n1", "MEMBER_ROLE": "PRIMARY", "MEMBER_STATE": "ONLINE"}],
        )
        assert admin.members(session) == [
            {"member_host": "n1", "member_role": "PRIMARY", "member_state": "ONLINE"}
        ]

    def test_primaries(self):
        session = FakeSession().on("MEMBER_ROLE = 'PRIMARY'", [{"MEMBER_HOST": "n2"}])
        assert admin.primaries(session) == {"n2"}

    def test_no_primaries(self, fake_session):
        assert admin.primaries(fake_session) == set()
