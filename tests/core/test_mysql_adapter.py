"""Tests for replcheck.core.adapters.mysql with the driver mocked out."""

from unittest.mock import MagicMock, patch

import pytest
from mysql.connector import errors as mysql_errors
from mysql.connector.constants import ClientFlag

from replcheck.core.adapters.mysql import MySQLConnector, MySQLSession, is_link_failure
from replcheck.core.adapters.types import TimeoutPolicy
from replcheck.core.config import HarnessSettings, Isolation
from replcheck.core.errors import (
    CommunicationError,
    IndeterminateError,
    InjectedAbort,
    InvariantViolationError,
)
from replcheck.core.outcome import Info
from replcheck.execution.classifier import OutcomeClassifier


def _lost() -> mysql_errors.OperationalError:
    return mysql_errors.OperationalError(msg="Lost connection to MySQL server", errno=2013)


class TestIsLinkFailure:
    def test_client_errnos(self):
        assert is_link_failure(_lost())
        assert is_link_failure(mysql_errors.InterfaceError(msg="gone", errno=2006))

    def test_server_errors_are_not_link_failures(self):
        assert not is_link_failure(mysql_errors.DatabaseError(msg="Deadlock", errno=1213))

    def test_os_level_errors(self):
        assert is_link_failure(TimeoutError())
        assert is_link_failure(ConnectionResetError())
        assert not is_link_failure(ValueError())


class TestMySQLSession:
    """Statement execution and transaction boundaries."""

    def _session(self):
        conn = MagicMock()
        cursor = conn.cursor.return_value
        return MySQLSession("n1", conn), conn, cursor

    def test_execute_query_returns_rows(self):
        session, conn, cursor = self._session()
        cursor.with_rows = True
        cursor.fetchall.return_value = [{"val": "1,2"}]
        assert session.execute("SELECT val FROM txn0 WHERE id = %s", [1]) == [{"val": "1,2"}]
        conn.cursor.assert_called_once_with(dictionary=True)
        cursor.execute.assert_called_once_with("SELECT val FROM txn0 WHERE id = %s", (1,))
        cursor.close.assert_called_once()

    def test_execute_update_returns_rowcount(self):
        session, _, cursor = self._session()
        cursor.with_rows = False
        cursor.rowcount = 1
        assert session.execute("UPDATE txn0 SET val = 1 WHERE id = 1") == 1

    def test_cursor_closed_on_error(self):
        session, _, cursor = self._session()
        cursor.execute.side_effect = _lost()
        with pytest.raises(mysql_errors.OperationalError):
            session.execute("SELECT 1")
        cursor.close.assert_called_once()

    def test_transaction_commits(self):
        session, conn, _ = self._session()
        with session.transaction(Isolation.REPEATABLE_READ):
            assert session.in_transaction
        conn.start_transaction.assert_called_once_with(isolation_level="REPEATABLE READ")
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        assert not session.in_transaction

    def test_transaction_rolls_back_and_reraises(self):
        session, conn, _ = self._session()
        with pytest.raises(RuntimeError):
            with session.transaction(Isolation.SERIALIZABLE):
                raise RuntimeError("body failed")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_link_failure_during_commit_is_indeterminate(self):
        session, conn, _ = self._session()
        conn.commit.side_effect = _lost()
        with pytest.raises(IndeterminateError) as exc_info:
            with session.transaction(Isolation.SERIALIZABLE):
                pass
        err = exc_info.value
        assert err.reason == "link-failure-during-commit"
        assert err.context.node == "n1"
        assert err.context.errno == 2013
        assert not err.definite

    def test_link_failure_during_rollback_is_indeterminate(self):
        session, conn, _ = self._session()
        conn.rollback.side_effect = _lost()
        body_error = mysql_errors.DatabaseError(msg="Deadlock found", errno=1213)
        with pytest.raises(IndeterminateError) as exc_info:
            with session.transaction(Isolation.SERIALIZABLE):
                raise body_error
        assert exc_info.value.reason == "link-failure-during-rollback"
        assert exc_info.value.interrupted is body_error

    def test_other_rollback_errors_keep_body_error(self, captured_logs):
        session, conn, _ = self._session()
        conn.rollback.side_effect = mysql_errors.DatabaseError(msg="Rollback refused", errno=1180)
        with pytest.raises(RuntimeError, match="body failed"):
            with session.transaction(Isolation.SERIALIZABLE):
                raise RuntimeError("body failed")
        assert [e["event"] for e in captured_logs] == ["session.rollback_failed"]
        assert captured_logs[0]["during"] == "RuntimeError"

    def test_other_commit_errors_propagate(self):
        session, conn, _ = self._session()
        conn.commit.side_effect = mysql_errors.DatabaseError(msg="Deadlock", errno=1213)
        with pytest.raises(mysql_errors.DatabaseError):
            with session.transaction(Isolation.SERIALIZABLE):
                pass

    def test_close_ignores_driver_errors(self):
        session, conn, _ = self._session()
        conn.close.side_effect = _lost()
        session.close()
        conn.close.assert_called_once()


class TestLostRollbackOutcome:
    """What a run records when the rollback after a failed body loses the link."""

    def _run(self, body_error):
        conn = MagicMock()
        conn.rollback.side_effect = _lost()
        session = MySQLSession("n1", conn)

        def body():
            with session.transaction(Isolation.SERIALIZABLE):
                raise body_error

        return OutcomeClassifier(read_only_backoff=0).run(body)

    def test_invariant_violation_stays_fatal(self):
        with pytest.raises(InvariantViolationError, match="upsert"):
            self._run(InvariantViolationError("upsert retries exhausted"))

    def test_unrecognized_driver_error_stays_fatal(self, captured_logs):
        error = mysql_errors.DatabaseError(msg="Plugin error", errno=3100)
        with pytest.raises(mysql_errors.DatabaseError) as exc_info:
            self._run(error)
        assert exc_info.value is error
        assert "classifier.rollback_lost_after_fatal_error" in [e["event"] for e in captured_logs]

    def test_recognized_body_error_is_info(self):
        outcome = self._run(mysql_errors.DatabaseError(msg="Deadlock found", errno=1213))
        assert isinstance(outcome, Info)
        assert outcome.reason.kind == "link-failure-during-rollback"

    def test_injected_abort_is_info(self):
        outcome = self._run(InjectedAbort())
        assert isinstance(outcome, Info)
        assert outcome.reason.kind == "link-failure-during-rollback"

    def test_lost_commit_is_info(self):
        conn = MagicMock()
        conn.commit.side_effect = _lost()
        session = MySQLSession("n1", conn)

        def body():
            with session.transaction(Isolation.SERIALIZABLE):
                return None

        outcome = OutcomeClassifier(read_only_backoff=0).run(body)
        assert isinstance(outcome, Info)
        assert outcome.reason.kind == "link-failure-during-commit"


class TestMySQLConnector:
    """Connection parameters and await-open retries."""

    def test_open_passes_driver_options(self):
        connector = MySQLConnector(
            port=3307,
            user="u",
            password="p",
            database="replcheck_append",
            timeouts=TimeoutPolicy(connect_timeout=2, socket_timeout=9),
        )
        with patch("mysql.connector.connect") as connect:
            session = connector.open("n3")
        kwargs = connect.call_args.kwargs
        assert kwargs["host"] == "n3"
        assert kwargs["port"] == 3307
        assert kwargs["database"] == "replcheck_append"
        assert kwargs["connection_timeout"] == 9
        assert kwargs["autocommit"] is True
        assert kwargs["client_flags"] == [ClientFlag.FOUND_ROWS]
        assert session.node == "n3"
        assert session.raw is connect.return_value

    def test_open_without_database(self):
        with patch("mysql.connector.connect") as connect:
            MySQLConnector().open("n1")
        assert "database" not in connect.call_args.kwargs

    def test_open_with_explicit_timeouts(self):
        with patch("mysql.connector.connect") as connect:
            MySQLConnector().open("n1", TimeoutPolicy(socket_timeout=1000))
        assert connect.call_args.kwargs["connection_timeout"] == 1000

    def test_from_settings(self):
        settings = HarnessSettings(port=3310, user="x", socket_timeout=4, await_timeout=7)
        connector = MySQLConnector.from_settings(settings, database="d")
        cfg = connector.node_config("n2")
        assert (cfg.port, cfg.user, cfg.database) == (3310, "x", "d")

    def test_await_open_retries_until_server_answers(self, monkeypatch):
        monkeypatch.setattr("replcheck.core.adapters.mysql.time.sleep", lambda s: None)
        good = MagicMock()
        good.cursor.return_value.with_rows = True
        good.cursor.return_value.fetchall.return_value = [{"UUID()": "x"}]
        with patch("mysql.connector.connect", side_effect=[_lost(), ConnectionRefusedError(), good]):
            session = MySQLConnector(retry_interval=0.01).await_open("n1")
        assert session.raw is good

    def test_await_open_gives_up(self, monkeypatch):
        monkeypatch.setattr("replcheck.core.adapters.mysql.time.sleep", lambda s: None)
        with patch("mysql.connector.connect", side_effect=_lost()):
            with pytest.raises(CommunicationError) as exc_info:
                MySQLConnector(await_timeout=0.0).await_open("n4")
        assert exc_info.value.context.node == "n4"
