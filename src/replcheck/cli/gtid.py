"""
CLI: ``replcheck gtid``: GTID set arithmetic, offline.
"""

from __future__ import annotations

import typer

from replcheck.cli.utils import console, fail, output_data
from replcheck.core.errors import MalformedInputError
from replcheck.progress import ProgressSet, most_recent_node, parse, union

app = typer.Typer(no_args_is_help=True)


def _parse_or_exit(text: str) -> ProgressSet:
    try:
        return parse(text)
    except MalformedInputError as e:
        fail(e)


def _describe(progress: ProgressSet) -> dict:
    return {
        "gtid_set": str(progress),
        "cardinality": progress.cardinality(),
        "ranges": progress.to_pairs(),
    }


@app.command("parse")
def parse_cmd(
    text: str = typer.Argument(..., help="GTID set text, e.g. 'uuid:1-5:7, uuid2:1-3'"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Parse a GTID set and print it in minimal form."""
    output_data(_describe(_parse_or_exit(text)), as_json=json_out, title="GTID Set")


@app.command("union")
def union_cmd(
    texts: list[str] = typer.Argument(..., help="GTID sets to union"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Union any number of GTID sets."""
    merged = union(*(_parse_or_exit(t) for t in texts))
    output_data(_describe(merged), as_json=json_out, title="Union")


@app.command("cardinality")
def cardinality_cmd(
    text: str = typer.Argument(..., help="GTID set text"),
) -> None:
    """Count the transactions in a GTID set."""
    console.print(_parse_or_exit(text).cardinality())


@app.command("most-recent")
def most_recent_cmd(
    entries: list[str] = typer.Argument(..., help="NODE=GTID_SET pairs"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Pick the node whose GTID set holds the most transactions."""
    progress: dict[str, ProgressSet] = {}
    for entry in entries:
        node, sep, text = entry.partition("=")
        if not sep or not node.strip():
            raise typer.BadParameter(f"expected NODE=GTID_SET, got {entry!r}")
        progress[node.strip()] = _parse_or_exit(text)

    node = most_recent_node(progress)
    if json_out:
        output_data(
            {
                "node": node,
                "cardinality": {n: p.cardinality() for n, p in sorted(progress.items())},
            },
            as_json=True,
        )
        return
    console.print(node)
