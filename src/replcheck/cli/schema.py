"""
CLI: ``replcheck schema``: create the workload's database and tables.
"""

from __future__ import annotations

import typer

from replcheck.cli.utils import console, fail, load_settings, make_connector
from replcheck.core.config import WorkloadName
from replcheck.core.errors import ReplCheckError
from replcheck.execution.workloads import get_workload, setup_schema

app = typer.Typer(no_args_is_help=True)


@app.command()
def setup(
    node: str | None = typer.Option(None, "--node", "-n", help="Node to run DDL on (default: first node)"),
    workload: WorkloadName | None = typer.Option(None, "--workload", "-w"),
    table_count: int | None = typer.Option(None, "--table-count"),
) -> None:
    """Create the workload database and tables on the primary."""
    settings = load_settings(workload=workload, table_count=table_count)
    target = node or settings.primary_node
    wl = get_workload(settings.workload)
    try:
        session = make_connector(settings).await_open(target)
    except ReplCheckError as e:
        fail(e)
    try:
        created = setup_schema(session, wl, settings.table_count)
    finally:
        session.close()
    if created:
        console.print(f"[green]Created[/green] {wl.database} with {settings.table_count} tables on {target}")
    else:
        console.print(f"[yellow]Skipped[/yellow]: {target} is read-only")
