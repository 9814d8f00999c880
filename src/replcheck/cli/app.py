"""
Root Typer application for the replcheck CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="replcheck",
    help="replcheck: fault-injection workloads and recovery for MySQL group replication.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from replcheck import __version__

        typer.echo(f"replcheck {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """replcheck CLI: GTID sets, cluster recovery, schema and workload runs."""


# ── Sub-command registration ─────────────────────────────────────────────

from replcheck.cli.cluster import app as cluster_app  # noqa: E402
from replcheck.cli.gtid import app as gtid_app  # noqa: E402
from replcheck.cli.run import run as run_command  # noqa: E402
from replcheck.cli.schema import app as schema_app  # noqa: E402

app.add_typer(gtid_app, name="gtid", help="GTID set arithmetic.")
app.add_typer(cluster_app, name="cluster", help="Group replication inspection and recovery.")
app.add_typer(schema_app, name="schema", help="Workload schema management.")
app.command("run")(run_command)
