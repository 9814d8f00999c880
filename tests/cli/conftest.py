"""Shared fixtures for replcheck.cli tests."""

from collections.abc import Callable

import pytest

from tests._support.fakes import FakeConnector


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep commands from reconfiguring structlog onto CliRunner's streams."""
    monkeypatch.setattr("replcheck.cli.utils.configure_from_settings", lambda settings: None)


@pytest.fixture()
def use_connector(monkeypatch: pytest.MonkeyPatch) -> Callable[[FakeConnector], FakeConnector]:
    """Make every CLI command talk to the given fake connector."""

    def install(connector: FakeConnector) -> FakeConnector:
        for module in ("cluster", "schema", "run"):
            monkeypatch.setattr(
                f"replcheck.cli.{module}.make_connector",
                lambda settings, database=None: connector,
            )
        return connector

    return install
