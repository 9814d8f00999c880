"""Tests for replcheck.core.outcome module."""

from replcheck.core.errors import (
    CommunicationError,
    ConflictError,
    IndeterminateError,
    InjectedAbort,
    UnavailableError,
)
from replcheck.core.outcome import Fail, Info, Ok, Reason, outcome_for


class TestReason:
    """Test the structured reason recorded in the history."""

    def test_bare_kind(self):
        assert Reason("abort").to_value() == "abort"

    def test_kind_and_message(self):
        assert Reason("deadlock", "Deadlock found").to_value() == ["deadlock", "Deadlock found"]

    def test_from_error_prefers_cause_message(self):
        err = ConflictError("wrapped", reason="deadlock", cause=RuntimeError("1213 Deadlock"))
        assert Reason.from_error(err) == Reason("deadlock", "1213 Deadlock")

    def test_from_error_without_cause(self):
        assert Reason.from_error(InjectedAbort()) == Reason("abort", "injected abort")

    def test_from_error_message_equal_to_reason_dropped(self):
        assert Reason.from_error(UnavailableError("unavailable")) == Reason("unavailable")


class TestOutcomes:
    """Test Ok / Fail / Info."""

    def test_types(self):
        assert Ok(1).type == "ok"
        assert Fail(Reason("x")).type == "fail"
        assert Info(Reason("x")).type == "info"

    def test_is_ok(self):
        assert Ok(None).is_ok()
        assert not Fail(Reason("x")).is_ok()
        assert not Info(Reason("x")).is_ok()

    def test_pattern_matching(self):
        match Fail(Reason("deadlock")):
            case Ok(value):
                result = value
            case Fail(reason) | Info(reason):
                result = reason.kind
        assert result == "deadlock"


class TestOutcomeFor:
    """Definite errors become Fail, indefinite ones Info."""

    def test_definite_is_fail(self):
        assert isinstance(outcome_for(ConflictError("x", reason="deadlock")), Fail)
        assert isinstance(outcome_for(InjectedAbort()), Fail)
        assert isinstance(outcome_for(UnavailableError("x", reason="super-read-only")), Fail)

    def test_indefinite_is_info(self):
        assert isinstance(outcome_for(CommunicationError("x")), Info)
        assert isinstance(outcome_for(IndeterminateError("x")), Info)

    def test_reason_kind_carried(self):
        outcome = outcome_for(CommunicationError("lost", reason="comms"))
        assert outcome.reason.kind == "comms"
