"""
CLI: ``replcheck cluster``: inspect and recover a group replication cluster.
"""

from __future__ import annotations

import typer

from replcheck.cli.utils import console, fail, load_settings, make_connector, output_data, split_nodes
from replcheck.cluster import admin
from replcheck.cluster.deployment import discover_primaries
from replcheck.cluster.recovery import recover_cluster
from replcheck.core.errors import ReplCheckError

app = typer.Typer(no_args_is_help=True)


@app.command()
def primaries(
    nodes: str | None = typer.Option(None, "--nodes", help="Comma-separated nodes"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show which members the reachable nodes believe are primaries."""
    settings = load_settings(nodes=split_nodes(nodes))
    found = sorted(discover_primaries(make_connector(settings), settings.nodes))
    if json_out:
        output_data({"primaries": found}, as_json=True)
        return
    if not found:
        console.print("[yellow]No primaries[/yellow]")
        return
    for host in found:
        console.print(host)


@app.command()
def members(
    node: str = typer.Argument(..., help="Node to ask"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show the group membership table as seen by one node."""
    settings = load_settings()
    try:
        session = make_connector(settings).await_open(node)
    except ReplCheckError as e:
        fail(e)
    try:
        rows = admin.members(session)
    finally:
        session.close()
    output_data(rows, as_json=json_out, title=f"Members seen by {node}")


@app.command()
def recover(
    nodes: str | None = typer.Option(None, "--nodes", help="Comma-separated nodes"),
    force: bool = typer.Option(False, "--force", help="Recover even if a primary exists"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Re-seed the group from the node that knows the most transactions."""
    settings = load_settings(nodes=split_nodes(nodes))
    connector = make_connector(settings)
    if not force:
        found = discover_primaries(connector, settings.nodes)
        if found:
            output_data(
                {"result": "no-need", "primaries": sorted(found)},
                as_json=json_out,
                title="Recovery",
            )
            return
    try:
        report = recover_cluster(settings, connector)
    except ReplCheckError as e:
        fail(e)
    output_data(report, as_json=json_out, title="Recovery")
